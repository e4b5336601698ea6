"""
Seat hold endpoints.

The session id returned by every successful call is the client's token for
the hold; it changes whenever the set of held seats is replaced.
"""

from typing import Optional, Union

from fastapi import APIRouter, Depends, status

from seathold.api.deps import get_core, get_session_token
from seathold.container import BookingCore
from seathold.domain.models import ReservationSession
from seathold.schemas.pricing import PricingSummaryResponse
from seathold.schemas.reservation import (
    ReleaseResponse,
    ReservationResponse,
    ReserveRequest,
    SeatSelectionRequest,
)

router = APIRouter(prefix="/reservations", tags=["Reservations"])


def _to_response(core: BookingCore, session: ReservationSession) -> ReservationResponse:
    return ReservationResponse(
        session_id=session.session_id,
        schedule_id=session.schedule_id,
        seat_ids=sorted(session.seat_ids),
        created_at=session.created_at,
        expires_at=session.expires_at,
        seconds_remaining=session.seconds_remaining(core.clock()),
    )


@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def reserve_seats(
    request: ReserveRequest,
    core: BookingCore = Depends(get_core),
    header_session: Optional[str] = Depends(get_session_token),
):
    """
    Hold seats for five minutes, all or nothing.

    Returns 409 naming the conflicting seats if any is held or sold by
    someone else. Seats held by the caller's previous session (body or
    X-Reservation-Session header) do not conflict.
    """
    session = await core.reservations.reserve(
        request.schedule_id,
        request.seat_ids,
        existing_session_id=request.session_id or header_session,
    )
    return _to_response(core, session)


@router.get("/{session_id}", response_model=ReservationResponse)
async def get_reservation(session_id: str, core: BookingCore = Depends(get_core)):
    session = await core.reservations.get_session(session_id)
    return _to_response(core, session)


@router.put("/{session_id}", response_model=ReservationResponse)
async def change_reservation(
    session_id: str,
    request: SeatSelectionRequest,
    core: BookingCore = Depends(get_core),
):
    """Replace a hold's seats (release, then reserve)."""
    session = await core.reservations.extend(session_id, request.seat_ids)
    return _to_response(core, session)


@router.post("/{session_id}/deselect", response_model=Union[ReservationResponse, ReleaseResponse])
async def deselect_seats(
    session_id: str,
    request: SeatSelectionRequest,
    core: BookingCore = Depends(get_core),
):
    """Release single seats; the remaining seats keep their deadline."""
    session = await core.reservations.release_seats(session_id, request.seat_ids)
    if session is None:
        return ReleaseResponse(session_id=session_id, released=True)
    return _to_response(core, session)


@router.delete("/{session_id}", response_model=ReleaseResponse)
async def release_reservation(session_id: str, core: BookingCore = Depends(get_core)):
    """Release a hold. Unknown or lapsed sessions are not an error."""
    released = await core.reservations.release(session_id)
    return ReleaseResponse(session_id=session_id, released=released)


@router.get("/{session_id}/pricing", response_model=PricingSummaryResponse)
async def price_reservation(
    session_id: str,
    promotion_code: Optional[str] = None,
    core: BookingCore = Depends(get_core),
):
    return await core.booking_service.quote(session_id, promotion_code)
