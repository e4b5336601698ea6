"""
Pydantic schemas for checkout and booking responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from seathold.domain.models import BookingStatus, PaymentStatus, SeatCategory


class CustomerIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=32)


class CheckoutRequest(BaseModel):
    session_id: str
    customer: CustomerIn
    payment_method_id: str = Field(..., min_length=1)
    promotion_code: Optional[str] = Field(None, max_length=50)


class CustomerResponse(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None

    model_config = {"from_attributes": True}


class SeatBookingResponse(BaseModel):
    seat_id: str
    row: str
    number: int
    category: SeatCategory
    price: Decimal

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    booking_number: str
    schedule_id: int
    status: BookingStatus
    effective_status: BookingStatus
    payment_status: PaymentStatus
    seats: list[SeatBookingResponse]
    subtotal: Decimal
    fee: Decimal
    tax: Decimal
    discount: Decimal
    total_amount: Decimal
    promotion_code: Optional[str] = None
    transaction_id: Optional[str] = None
    customer: CustomerResponse
    created_at: datetime
    updated_at: datetime
