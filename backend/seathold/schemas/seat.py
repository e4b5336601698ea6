"""
Pydantic schemas for seat maps and seat consistency reports.
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from seathold.domain.models import SeatCategory, SeatStatus


class SeatResponse(BaseModel):
    seat_id: str
    row: str
    number: int
    category: SeatCategory
    status: SeatStatus
    price: Decimal
    held_by_you: bool = False


class SeatRowResponse(BaseModel):
    row: str
    seats: list[SeatResponse]


class SeatMapResponse(BaseModel):
    schedule_id: int
    rows: list[SeatRowResponse]
    seat_count: int
    expected_total: int
    needs_refresh: bool
    version: int


class SeatMapGenerateRequest(BaseModel):
    seats_per_row: int = Field(default=15, gt=0, le=200)
    vip_rows: Optional[int] = Field(None, ge=0)
    premium_rows: Optional[int] = Field(None, ge=0)
    disabled_seats: list[str] = Field(default_factory=list)
    maintenance_seats: list[str] = Field(default_factory=list)


class ConsistencyReportResponse(BaseModel):
    schedule_id: int
    capacity: int
    seat_count: int
    status_counts: dict[str, int]
    recorded_sold: int
    consistent: bool
    discrepancies: list[str]
