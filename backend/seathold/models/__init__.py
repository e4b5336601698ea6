from seathold.models.booking import Booking, SeatBooking
from seathold.models.promotion import Promotion
from seathold.models.schedule import Schedule
from seathold.models.seat import Seat

__all__ = ["Booking", "Promotion", "Schedule", "Seat", "SeatBooking"]
