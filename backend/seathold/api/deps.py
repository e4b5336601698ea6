"""
FastAPI dependencies shared by the route modules.
"""

from typing import Optional

from fastapi import Header, Request

from seathold.container import BookingCore

SESSION_HEADER = "X-Reservation-Session"


def get_core(request: Request) -> BookingCore:
    return request.app.state.core


def get_session_token(
    x_reservation_session: Optional[str] = Header(default=None, alias=SESSION_HEADER),
) -> Optional[str]:
    """Opaque hold token sent back by the client; only ever used as a lookup key."""
    return x_reservation_session or None
