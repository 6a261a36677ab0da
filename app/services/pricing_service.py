import math
from datetime import date, datetime, time

from app.core.config import settings
from app.core.exceptions import ValidationError

SECONDS_PER_DAY = 24 * 60 * 60


def _parse_hhmm(value: str | None) -> time:
    if not value:
        return time(0, 0)
    try:
        hh, mm = map(int, value.split(":"))
        return time(hh, mm)
    except ValueError:
        raise ValidationError(f"invalid time '{value}', expected HH:MM")


def window_bounds(start: date, end: date, pickup_time: str | None = None, return_time: str | None = None) -> tuple[datetime, datetime]:
    return datetime.combine(start, _parse_hhmm(pickup_time)), datetime.combine(end, _parse_hhmm(return_time))


def rental_days(start: date, end: date, pickup_time: str | None = None, return_time: str | None = None) -> int:
    """Whole rental days, rounded up; never less than one."""
    start_at, end_at = window_bounds(start, end, pickup_time, return_time)
    seconds = abs((end_at - start_at).total_seconds())
    return max(1, math.ceil(seconds / SECONDS_PER_DAY))


def security_deposit(subtotal: int, percent: int | None = None) -> int:
    if percent is None:
        percent = settings.SECURITY_DEPOSIT_PERCENT
    # round half up on integer pesos
    return (subtotal * percent + 50) // 100


def quote(daily_rate: int, start: date, end: date, pickup_time: str | None = None, return_time: str | None = None) -> dict:
    start_at, end_at = window_bounds(start, end, pickup_time, return_time)
    if end_at <= start_at:
        raise ValidationError("return must be after pickup")
    days = rental_days(start, end, pickup_time, return_time)
    subtotal = days * int(daily_rate)
    deposit = security_deposit(subtotal)
    total = subtotal + deposit
    if total <= 0:
        raise ValidationError(f"computed price must be positive (days={days}, daily_rate={daily_rate})")
    return {"days": days, "subtotal": subtotal, "deposit": deposit, "total": total}


def validate_window(start: date, end: date, today: date, pickup_time: str | None = None, return_time: str | None = None) -> None:
    if start < today:
        raise ValidationError("pickup date cannot be in the past")
    start_at, end_at = window_bounds(start, end, pickup_time, return_time)
    if end_at <= start_at:
        raise ValidationError("return must be after pickup")
