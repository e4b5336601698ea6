"""
Seat map, seat map generation, consistency report and booking window endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from seathold.api.deps import get_core, get_session_token
from seathold.container import BookingCore
from seathold.domain.models import SeatMap
from seathold.schemas.pricing import BookingWindowResponse
from seathold.schemas.seat import (
    ConsistencyReportResponse,
    SeatMapGenerateRequest,
    SeatMapResponse,
    SeatResponse,
    SeatRowResponse,
)
from seathold.services.seat_map_service import VenueLayout

router = APIRouter(prefix="/schedules", tags=["Schedules"])


async def _seat_map_response(core: BookingCore, seat_map: SeatMap, session_id: Optional[str]) -> SeatMapResponse:
    schedule = await core.schedules.get_schedule(seat_map.schedule_id)
    rows = [
        SeatRowResponse(
            row=row[0].row,
            seats=[
                SeatResponse(
                    seat_id=seat.seat_id,
                    row=seat.row,
                    number=seat.number,
                    category=seat.category,
                    status=seat.status,
                    price=core.pricing.seat_price(seat, schedule.base_price),
                    held_by_you=session_id is not None and seat.held_by == session_id,
                )
                for seat in row
            ],
        )
        for row in seat_map.rows
        if row
    ]
    seat_count = seat_map.seat_count()
    return SeatMapResponse(
        schedule_id=seat_map.schedule_id,
        rows=rows,
        seat_count=seat_count,
        expected_total=seat_map.expected_total,
        needs_refresh=seat_count != seat_map.expected_total,
        version=seat_map.version,
    )


@router.get("/{schedule_id}/seats", response_model=SeatMapResponse)
async def get_seat_map(
    schedule_id: int,
    core: BookingCore = Depends(get_core),
    session_id: Optional[str] = Depends(get_session_token),
):
    """Live seat map. Seats held by the caller's own session are flagged."""
    seat_map = await core.seat_maps.get_seat_map(schedule_id)
    return await _seat_map_response(core, seat_map, session_id)


@router.post("/{schedule_id}/seats", response_model=SeatMapResponse, status_code=status.HTTP_201_CREATED)
async def generate_seat_map(
    schedule_id: int,
    layout: SeatMapGenerateRequest,
    core: BookingCore = Depends(get_core),
):
    """Generate a schedule's seats from venue capacity and a row layout."""
    seat_map = await core.seat_maps.generate(
        schedule_id,
        VenueLayout(
            seats_per_row=layout.seats_per_row,
            vip_rows=layout.vip_rows,
            premium_rows=layout.premium_rows,
            disabled_seats=frozenset(s.upper() for s in layout.disabled_seats),
            maintenance_seats=frozenset(s.upper() for s in layout.maintenance_seats),
        ),
    )
    return await _seat_map_response(core, seat_map, None)


@router.get("/{schedule_id}/consistency", response_model=ConsistencyReportResponse)
async def seat_consistency(schedule_id: int, core: BookingCore = Depends(get_core)):
    """Compare seat statuses with venue capacity. Read-only: nothing is corrected."""
    report = await core.consistency.report(schedule_id)
    return ConsistencyReportResponse(
        schedule_id=report.schedule_id,
        capacity=report.capacity,
        seat_count=report.seat_count,
        status_counts=report.status_counts,
        recorded_sold=report.recorded_sold,
        consistent=report.consistent,
        discrepancies=report.discrepancies,
    )


@router.get("/{schedule_id}/booking-window", response_model=BookingWindowResponse)
async def booking_window(schedule_id: int, core: BookingCore = Depends(get_core)):
    """Whether the show can still be booked, plus an urgency hint."""
    schedule = await core.schedules.get_schedule(schedule_id)
    decision = core.window.check(schedule)
    return BookingWindowResponse(
        schedule_id=schedule_id,
        allowed=decision.allowed,
        minutes_elapsed=decision.minutes_elapsed,
        reason=decision.reason,
        warning=decision.warning,
    )
