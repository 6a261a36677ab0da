from sqlalchemy import String, Integer, Date, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from app.db.session import Base

PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
COMPLETED = "completed"

ACTIVE_STATUSES = (PENDING, CONFIRMED)
TERMINAL_STATUSES = (CANCELLED, COMPLETED)


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reference: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(36), index=True)        # renter
    motorcycle_id: Mapped[str] = mapped_column(String(36), index=True)

    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    pickup_time: Mapped[str | None] = mapped_column(String(5), nullable=True)  # HH:MM
    return_time: Mapped[str | None] = mapped_column(String(5), nullable=True)  # HH:MM

    total_price: Mapped[int] = mapped_column(Integer)  # subtotal + security deposit
    status: Mapped[str] = mapped_column(String(20), index=True, default=PENDING)  # pending, confirmed, cancelled, completed

    # Snapshot at booking time
    customer_name: Mapped[str] = mapped_column(String(200), default="")
    customer_email: Mapped[str] = mapped_column(String(320), default="")
    customer_phone: Mapped[str] = mapped_column(String(40), default="")

    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)  # cash
    payment_proof_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    admin_notes: Mapped[str] = mapped_column(Text, default="")

    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)  # admin, customer
    cancellation_reason: Mapped[str] = mapped_column(String(500), default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                                                 onupdate=lambda: datetime.now(timezone.utc))
