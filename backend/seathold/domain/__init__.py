from seathold.domain.models import (
    Booking,
    BookingStatus,
    CustomerContact,
    DiscountType,
    PaymentResult,
    PaymentStatus,
    PricingSummary,
    Promotion,
    PromotionStatus,
    ReservationSession,
    ScheduleInfo,
    Seat,
    SeatBooking,
    SeatCategory,
    SeatMap,
    SeatStatus,
)

__all__ = [
    "Booking",
    "BookingStatus",
    "CustomerContact",
    "DiscountType",
    "PaymentResult",
    "PaymentStatus",
    "PricingSummary",
    "Promotion",
    "PromotionStatus",
    "ReservationSession",
    "ScheduleInfo",
    "Seat",
    "SeatBooking",
    "SeatCategory",
    "SeatMap",
    "SeatStatus",
]
