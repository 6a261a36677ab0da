from pydantic import BaseModel, Field
from typing import Optional


class RefundIn(BaseModel):
    amount: Optional[int] = None  # omitted = full refund
    reason: Optional[str] = Field(default=None, max_length=500)
