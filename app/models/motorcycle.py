from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

AVAILABLE = "Available"
RESERVED = "Reserved"
IN_MAINTENANCE = "In Maintenance"


class Motorcycle(Base):
    __tablename__ = "motorcycles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    daily_rate: Mapped[int] = mapped_column(Integer, default=0)  # whole pesos
    availability: Mapped[str] = mapped_column(String(20), index=True, default=AVAILABLE)  # Available, Reserved, In Maintenance
    held_by_reservation_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                                                 onupdate=lambda: datetime.now(timezone.utc))
