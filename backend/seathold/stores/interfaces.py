"""Store interfaces (repository pattern).

The core only talks to these; implementations live in stores/memory.py
(in-process) and stores/sql.py (SQLAlchemy). Stores return domain models.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from seathold.domain.models import (
    Booking,
    PaymentResult,
    Promotion,
    ScheduleInfo,
    Seat,
    SeatMap,
    SeatStatus,
)


class SeatMapStore(ABC):
    """Authoritative per-schedule seat inventory."""

    @abstractmethod
    async def get_seat_map(self, schedule_id: int) -> SeatMap:
        """Return all seats of a schedule grouped by row.

        Raises:
            ScheduleNotFound: If the schedule has no seat map.
        """
        ...

    @abstractmethod
    async def get_seat(self, schedule_id: int, seat_id: str) -> Seat:
        """Return one seat.

        Raises:
            ScheduleNotFound: If the schedule has no seat map.
            SeatNotFound: If the seat is not part of the schedule.
        """
        ...

    @abstractmethod
    async def set_seat_status(
        self,
        schedule_id: int,
        seat_id: str,
        status: SeatStatus,
        held_by: str | None = None,
        held_until: datetime | None = None,
    ) -> Seat:
        """Persist a status change unconditionally; visible to every subsequent read."""
        ...

    @abstractmethod
    async def claim_seat(
        self,
        schedule_id: int,
        seat_id: str,
        session_id: str,
        held_until: datetime,
        now: datetime,
        previous_session_id: str | None = None,
    ) -> Seat | None:
        """Mark a seat RESERVED for session_id in one atomic step.

        The write only happens if the seat is AVAILABLE, already held by
        session_id or previous_session_id, or held past its deadline.

        Returns:
            The updated seat, or None if someone else holds or owns it.
        """
        ...

    @abstractmethod
    async def settle_hold(self, schedule_id: int, seat_id: str, session_id: str, status: SeatStatus) -> Seat | None:
        """Move a seat still RESERVED by session_id to status (AVAILABLE or SOLD).

        Returns:
            The updated seat, or None if session_id no longer holds it.
        """
        ...

    @abstractmethod
    async def add_seats(self, schedule_id: int, seats: Iterable[Seat], expected_total: int) -> SeatMap:
        """Store a freshly generated seat map for a schedule.

        Raises:
            SeatMapInUse: The current map has RESERVED or SOLD seats.
        """
        ...


class ScheduleProvider(ABC):
    """Read access to schedules plus the schedule's sold-seat counter."""

    @abstractmethod
    async def get_schedule(self, schedule_id: int) -> ScheduleInfo:
        """Raises ScheduleNotFound for unknown ids."""
        ...

    @abstractmethod
    async def adjust_sold_seats(self, schedule_id: int, delta: int) -> int:
        """Add delta to the sold-seat count (never below zero); return the new count."""
        ...


class BookingStore(ABC):
    """Durable booking records. Bookings are never deleted."""

    @abstractmethod
    async def add(self, booking: Booking) -> Booking:
        """Insert a booking with its seat bookings; assigns id and booking number."""
        ...

    @abstractmethod
    async def get(self, booking_id: int) -> Booking:
        """Raises BookingNotFound."""
        ...

    @abstractmethod
    async def get_by_number(self, booking_number: str) -> Booking:
        """Raises BookingNotFound."""
        ...

    @abstractmethod
    async def save(self, booking: Booking) -> Booking:
        """Persist status, payment, pricing and contact changes of an existing booking.

        Seat lines are fixed at creation.
        """
        ...

    @abstractmethod
    async def find_pending_for_session(self, session_id: str) -> list[Booking]:
        ...

    @abstractmethod
    async def list_for_schedule(self, schedule_id: int) -> list[Booking]:
        ...


class PromotionStore(ABC):

    @abstractmethod
    async def validate(self, code: str) -> Promotion | None:
        """Return the promotion for a code, or None if the code is unknown."""
        ...

    @abstractmethod
    async def record_use(self, code: str) -> None:
        ...


class PaymentGateway(ABC):

    @abstractmethod
    async def capture(self, booking_id: int, payment_method_id: str, amount: Decimal) -> PaymentResult:
        """Capture payment. Any non-success is reported, never raised."""
        ...


class NotificationSink(ABC):

    @abstractmethod
    async def send(self, event: str, payload: dict[str, Any]) -> None:
        ...
