"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from seathold.api.routes import bookings, reservations, schedules

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(schedules.router)
api_router.include_router(reservations.router)
api_router.include_router(bookings.router)
