"""
Pydantic schemas for pricing summaries and the booking window check.
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel


class PricingSummaryResponse(BaseModel):
    subtotal: Decimal
    fee: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    promotion_code: Optional[str] = None
    seat_prices: dict[str, Decimal]

    model_config = {"from_attributes": True}


class BookingWindowResponse(BaseModel):
    schedule_id: int
    allowed: bool
    minutes_elapsed: int
    reason: Optional[str] = None
    warning: Optional[str] = None
