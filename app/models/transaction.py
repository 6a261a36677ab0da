from sqlalchemy import String, Integer, Date, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date as date_type, datetime, timezone
from app.db.session import Base

class Transaction(Base):
    """Coarse ledger entry used for bookkeeping and reports."""
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    reservation_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(20), index=True, default="payment")  # payment, deposit, refund
    amount: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), index=True, default="pending")  # pending, completed, failed, cancelled
    description: Mapped[str] = mapped_column(Text, default="")
    date: Mapped[date_type] = mapped_column(Date, default=lambda: datetime.now(timezone.utc).date())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
