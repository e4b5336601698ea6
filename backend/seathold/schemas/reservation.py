"""
Pydantic schemas for seat holds.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ReserveRequest(BaseModel):
    schedule_id: int
    seat_ids: list[str] = Field(..., min_length=1)
    session_id: Optional[str] = None


class SeatSelectionRequest(BaseModel):
    seat_ids: list[str] = Field(..., min_length=1)


class ReservationResponse(BaseModel):
    session_id: str
    schedule_id: int
    seat_ids: list[str]
    created_at: datetime
    expires_at: datetime
    seconds_remaining: int


class ReleaseResponse(BaseModel):
    session_id: str
    released: bool
