from seathold.schemas.booking import BookingResponse, CheckoutRequest, CustomerIn
from seathold.schemas.pricing import BookingWindowResponse, PricingSummaryResponse
from seathold.schemas.reservation import (
    ReleaseResponse,
    ReservationResponse,
    ReserveRequest,
    SeatSelectionRequest,
)
from seathold.schemas.seat import (
    ConsistencyReportResponse,
    SeatMapGenerateRequest,
    SeatMapResponse,
)

__all__ = [
    "BookingResponse", "CheckoutRequest", "CustomerIn",
    "BookingWindowResponse", "PricingSummaryResponse",
    "ReleaseResponse", "ReservationResponse", "ReserveRequest", "SeatSelectionRequest",
    "ConsistencyReportResponse", "SeatMapGenerateRequest", "SeatMapResponse",
]
