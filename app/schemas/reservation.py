from datetime import date
from pydantic import BaseModel, Field
from typing import Optional

class QuoteIn(BaseModel):
    motorcycleId: str
    startDate: date
    endDate: date
    pickupTime: Optional[str] = None  # HH:MM
    returnTime: Optional[str] = None  # HH:MM

class QuoteOut(BaseModel):
    days: int
    subtotal: int
    deposit: int
    total: int

class ReservationCreate(QuoteIn):
    paymentMethod: str = "cash"
    notes: str = ""
    # Snapshot of contact details at booking time; defaults to the profile
    customerName: Optional[str] = None
    customerEmail: Optional[str] = None
    customerPhone: Optional[str] = None

class ReasonIn(BaseModel):
    reason: str = Field(default="", max_length=500)
