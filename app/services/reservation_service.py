"""Reservation lifecycle: booking and the pending -> confirmed/cancelled/completed transitions.

The reservation status is the single source of truth. It is written first
(compare-and-set on the current status, so two transitions on the same
reservation cannot both apply); the motorcycle availability, the ledger, the
payment record and the renter notification follow as independent best-effort
steps. A failed step is recorded in ``propagation_failures`` and replayed by
``reconciliation_service``; it never undoes the status change.
"""
import logging
import random
import string
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InvalidTransition, NotFound, PropagationFailure, UnitUnavailable, ValidationError
from app.models.motorcycle import Motorcycle, IN_MAINTENANCE
from app.models.reservation import Reservation, PENDING, CONFIRMED, CANCELLED, COMPLETED, ACTIVE_STATUSES, TERMINAL_STATUSES
from app.models.user import User
from app.services import availability_service, ledger_service, notification_service
from app.services.audit_service import log_audit
from app.services.pricing_service import quote, validate_window
from app.services.propagation_service import record_failure

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "superadmin")

# action -> (allowed current statuses, resulting status)
TRANSITIONS = {
    "approve": ((PENDING,), CONFIRMED),
    "reject": ((PENDING,), CANCELLED),
    "complete": ((CONFIRMED,), COMPLETED),
    "cancel": (ACTIVE_STATUSES, CANCELLED),
}

DEFAULT_REJECTION_REASON = "Your booking could not be approved at this time. Please contact support for more information."


@dataclass
class TransitionResult:
    reservation: Reservation
    failures: list[PropagationFailure] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.failures


def make_reference() -> str:
    return "MR-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))


def local_today() -> date:
    return datetime.now(ZoneInfo(settings.BOOKING_TIMEZONE)).date()


def get_reservation(db: Session, reservation_id: str, for_update: bool = False) -> Reservation:
    stmt = select(Reservation).where(Reservation.id == reservation_id)
    if for_update:
        # re-read under the row lock even if the session already holds a stale copy
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    r = db.execute(stmt).scalar_one_or_none()
    if not r:
        raise NotFound("reservation", reservation_id)
    return r


def _unit_name(db: Session, r: Reservation) -> str:
    m = db.get(Motorcycle, r.motorcycle_id)
    return m.name if m and m.name else "the motorcycle"


def notice_for(action: str, r: Reservation, unit_name: str) -> tuple[str, str, str]:
    """(type, title, message) for the renter after ``action``."""
    if action == "book":
        return ("info", "Reservation Submitted",
                f"Your reservation {r.reference} for {unit_name} was received and is awaiting review.")
    if action == "approve":
        return ("confirmed", "Reservation Confirmed",
                f"Your reservation for {unit_name} has been confirmed! Pick up on {r.start_date.isoformat()}.")
    if action == "reject":
        return ("rejected", "Reservation Rejected",
                f"Your reservation for {unit_name} has been rejected. {r.cancellation_reason}".strip())
    if action == "complete":
        return ("success", "Reservation Completed",
                f"Your reservation for {unit_name} has been completed. Thank you!")
    if action == "cancel":
        by_admin = r.cancelled_by == "admin"
        message = f"Your reservation for {unit_name} has been cancelled."
        if by_admin and r.cancellation_reason:
            message += f" {r.cancellation_reason}"
        return ("warning" if by_admin else "info", "Reservation Cancelled", message)
    raise ValueError(f"no notification for action '{action}'")


def notify(db: Session, r: Reservation, action: str):
    type_, title, message = notice_for(action, r, _unit_name(db, r))
    return notification_service.dispatch(db, r.user_id, title, message, type=type_, reference_id=r.id)


def _attempt(db: Session, failures: list, r: Reservation, store: str, action: str, fn) -> None:
    try:
        fn()
    except Exception as e:
        db.rollback()
        failures.append(record_failure(db, r.id, store, action, r.status, e))


def book(db: Session, renter: User, motorcycle_id: str, start_date: date, end_date: date,
         pickup_time: str | None = None, return_time: str | None = None, payment_method: str = "cash",
         notes: str = "", customer_name: str | None = None, customer_email: str | None = None,
         customer_phone: str | None = None, today: date | None = None) -> TransitionResult:
    """Create a pending reservation with its pending ledger and payment rows.

    The motorcycle is not locked here; only ``approve`` takes it.
    """
    if not renter.driver_license_url:
        raise ValidationError("a driver's license must be on file before booking")
    if (payment_method or "cash") != "cash":
        raise ValidationError("only cash payments are accepted")
    validate_window(start_date, end_date, today or local_today(), pickup_time, return_time)

    m = db.get(Motorcycle, motorcycle_id)
    if not m:
        raise NotFound("motorcycle", motorcycle_id)
    if m.availability == IN_MAINTENANCE:
        raise UnitUnavailable(m.id, m.availability)
    q = quote(m.daily_rate, start_date, end_date, pickup_time, return_time)

    for _ in range(10):
        ref = make_reference()
        if not db.query(Reservation).filter(Reservation.reference == ref).first():
            break
    else:
        raise ValueError("could not allocate reservation reference")

    r = Reservation(
        id=str(uuid.uuid4()),
        reference=ref,
        user_id=renter.id,
        motorcycle_id=m.id,
        start_date=start_date,
        end_date=end_date,
        pickup_time=pickup_time or None,
        return_time=return_time or None,
        total_price=q["total"],
        status=PENDING,
        customer_name=customer_name if customer_name is not None else renter.full_name,
        customer_email=customer_email if customer_email is not None else renter.email,
        customer_phone=customer_phone if customer_phone is not None else renter.phone,
        payment_method="cash",
        admin_notes=notes or "",
    )
    db.add(r)
    log_audit(db, renter.id, "reservation.book", "reservation", r.id, q)
    db.commit()
    db.refresh(r)
    logger.info("reservation %s (%s) booked for motorcycle %s: %s", r.id, r.reference, m.id, q)

    result = TransitionResult(r)
    _attempt(db, result.failures, r, "transaction", "book", lambda: ledger_service.ensure_entries(db, r, q))
    _attempt(db, result.failures, r, "notification", "book", lambda: notify(db, r, "book"))
    return result


def _transition(db: Session, reservation_id: str, action: str, actor: User, reason: str = "") -> TransitionResult:
    allowed, target = TRANSITIONS[action]
    r = get_reservation(db, reservation_id, for_update=True)
    if action == "cancel" and actor.role not in ADMIN_ROLES and r.user_id != actor.id:
        raise NotFound("reservation", reservation_id)
    current = r.status
    if current not in allowed:
        raise InvalidTransition(r.id, current, action)

    values = {"status": target}
    if target == CANCELLED:
        values["cancelled_by"] = "admin" if actor.role in ADMIN_ROLES else "customer"
        values["cancellation_reason"] = (reason or (DEFAULT_REJECTION_REASON if action == "reject" else ""))[:500]

    # the unit lock and the status write commit together; a failure rolls back both
    try:
        if action == "approve":
            # first approve wins the unit; the reservation stays pending on UnitUnavailable
            availability_service.lock(db, r.motorcycle_id, r.id, commit=False)
        res = db.execute(
            update(Reservation)
            .where(Reservation.id == r.id, Reservation.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.rollback()
            raise InvalidTransition(r.id, get_reservation(db, r.id).status, action)
        log_audit(db, actor.id, f"reservation.{action}", "reservation", r.id, {"from": current, "to": target, "reason": reason})
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(r)
    logger.info("reservation %s %s -> %s by %s", r.id, current, target, actor.id)

    result = TransitionResult(r)
    if target in TERMINAL_STATUSES:
        _attempt(db, result.failures, r, "availability", action,
                 lambda: availability_service.release(db, r.motorcycle_id, r.id))
        _sync_ledger(db, result, r, action, target)
    _attempt(db, result.failures, r, "notification", action, lambda: notify(db, r, action))
    return result


def _sync_ledger(db: Session, result: TransitionResult, r: Reservation, action: str, target: str) -> None:
    try:
        outcome = ledger_service.sync_status(db, r.id, target)
    except Exception as e:
        db.rollback()
        outcome = {"transaction": False, "payment": False, "error": e}
    for store in ("transaction", "payment"):
        if not outcome[store]:
            result.failures.append(record_failure(db, r.id, store, action, target, outcome.get("error", f"{store} sync to {target} failed")))


def approve(db: Session, reservation_id: str, actor: User) -> TransitionResult:
    return _transition(db, reservation_id, "approve", actor)


def reject(db: Session, reservation_id: str, actor: User, reason: str = "") -> TransitionResult:
    return _transition(db, reservation_id, "reject", actor, reason)


def complete(db: Session, reservation_id: str, actor: User) -> TransitionResult:
    return _transition(db, reservation_id, "complete", actor)


def cancel(db: Session, reservation_id: str, actor: User, reason: str = "") -> TransitionResult:
    return _transition(db, reservation_id, "cancel", actor, reason)


def list_for_user(db: Session, user_id: str) -> list[Reservation]:
    return db.query(Reservation).filter(Reservation.user_id == user_id).order_by(Reservation.created_at.desc()).all()


def list_all(db: Session, status: str | None = None, limit: int = 100, offset: int = 0) -> list[Reservation]:
    q = db.query(Reservation)
    if status:
        q = q.filter(Reservation.status == status)
    return q.order_by(Reservation.created_at.desc()).limit(min(limit, 500)).offset(max(offset, 0)).all()


def serialize(r: Reservation) -> dict:
    return {
        "id": r.id,
        "reference": r.reference,
        "userId": r.user_id,
        "motorcycleId": r.motorcycle_id,
        "startDate": r.start_date.isoformat(),
        "endDate": r.end_date.isoformat(),
        "pickupTime": r.pickup_time,
        "returnTime": r.return_time,
        "totalPrice": r.total_price,
        "status": r.status,
        "customerName": r.customer_name,
        "customerEmail": r.customer_email,
        "customerPhone": r.customer_phone,
        "paymentMethod": r.payment_method,
        "adminNotes": r.admin_notes,
        "cancelledBy": r.cancelled_by,
        "cancellationReason": r.cancellation_reason,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
    }


def serialize_result(result: TransitionResult) -> dict:
    out = serialize(result.reservation)
    out["propagationFailures"] = [f.store for f in result.failures]
    return out
