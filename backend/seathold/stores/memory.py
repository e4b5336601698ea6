"""
In-process store implementations.

Used for single-process deployments, local development and tests. Writes are
immediately visible to every reader in the process.
"""

import dataclasses
import itertools
from datetime import datetime
from typing import Any, Iterable

from seathold.domain.errors import BookingNotFound, ScheduleNotFound, SeatMapInUse, SeatNotFound
from seathold.domain.models import (
    Booking,
    BookingStatus,
    Promotion,
    PromotionStatus,
    ScheduleInfo,
    Seat,
    SeatMap,
    SeatStatus,
)
from seathold.stores.interfaces import (
    BookingStore,
    NotificationSink,
    PromotionStore,
    ScheduleProvider,
    SeatMapStore,
)


def row_sort_key(row: str) -> tuple[int, str]:
    """Order rows A..Z, then AA, AB, ..."""
    return len(row), row


def group_rows(seats: Iterable[Seat]) -> tuple[tuple[Seat, ...], ...]:
    ordered = sorted(seats, key=lambda s: (row_sort_key(s.row), s.number))
    return tuple(
        tuple(row_seats)
        for _, row_seats in itertools.groupby(ordered, key=lambda s: s.row)
    )


IN_USE = frozenset({SeatStatus.RESERVED, SeatStatus.SOLD})


def ensure_replaceable(schedule_id: int, seats: Iterable[Seat]) -> None:
    """Refuse to drop a map while any of its seats is held or sold."""
    in_use = [seat.seat_id for seat in seats if seat.status in IN_USE]
    if in_use:
        raise SeatMapInUse(schedule_id, in_use)


class InMemorySeatMapStore(SeatMapStore):

    def __init__(self) -> None:
        self._seats: dict[int, dict[str, Seat]] = {}
        self._expected: dict[int, int] = {}
        self._versions: dict[int, int] = {}

    def _schedule(self, schedule_id: int) -> dict[str, Seat]:
        seats = self._seats.get(schedule_id)
        if seats is None:
            raise ScheduleNotFound(schedule_id)
        return seats

    async def get_seat_map(self, schedule_id: int) -> SeatMap:
        seats = self._schedule(schedule_id)
        return SeatMap(
            schedule_id=schedule_id,
            rows=group_rows(seats.values()),
            expected_total=self._expected[schedule_id],
            version=self._versions[schedule_id],
        )

    async def get_seat(self, schedule_id: int, seat_id: str) -> Seat:
        seat = self._schedule(schedule_id).get(seat_id)
        if seat is None:
            raise SeatNotFound(schedule_id, seat_id)
        return seat

    async def set_seat_status(
        self,
        schedule_id: int,
        seat_id: str,
        status: SeatStatus,
        held_by: str | None = None,
        held_until: datetime | None = None,
    ) -> Seat:
        seat = await self.get_seat(schedule_id, seat_id)
        return self._write(schedule_id, dataclasses.replace(seat, status=status, held_by=held_by, held_until=held_until))

    async def claim_seat(
        self,
        schedule_id: int,
        seat_id: str,
        session_id: str,
        held_until: datetime,
        now: datetime,
        previous_session_id: str | None = None,
    ) -> Seat | None:
        seat = await self.get_seat(schedule_id, seat_id)
        if not seat.claimable_by((session_id, previous_session_id), now):
            return None
        return self._write(
            schedule_id,
            dataclasses.replace(seat, status=SeatStatus.RESERVED, held_by=session_id, held_until=held_until),
        )

    async def settle_hold(self, schedule_id: int, seat_id: str, session_id: str, status: SeatStatus) -> Seat | None:
        seat = await self.get_seat(schedule_id, seat_id)
        if seat.status != SeatStatus.RESERVED or seat.held_by != session_id:
            return None
        return self._write(schedule_id, dataclasses.replace(seat, status=status, held_by=None, held_until=None))

    def _write(self, schedule_id: int, seat: Seat) -> Seat:
        self._seats[schedule_id][seat.seat_id] = seat
        self._versions[schedule_id] += 1
        return seat

    async def add_seats(self, schedule_id: int, seats: Iterable[Seat], expected_total: int) -> SeatMap:
        ensure_replaceable(schedule_id, self._seats.get(schedule_id, {}).values())
        self._seats[schedule_id] = {seat.seat_id: seat for seat in seats}
        self._expected[schedule_id] = expected_total
        self._versions[schedule_id] = self._versions.get(schedule_id, 0) + 1
        return await self.get_seat_map(schedule_id)


class InMemoryScheduleProvider(ScheduleProvider):

    def __init__(self, schedules: Iterable[ScheduleInfo] = ()) -> None:
        self._schedules: dict[int, ScheduleInfo] = {s.id: s for s in schedules}

    def add(self, schedule: ScheduleInfo) -> None:
        self._schedules[schedule.id] = schedule

    async def get_schedule(self, schedule_id: int) -> ScheduleInfo:
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFound(schedule_id)
        return schedule

    async def adjust_sold_seats(self, schedule_id: int, delta: int) -> int:
        schedule = await self.get_schedule(schedule_id)
        sold = max(0, schedule.sold_seats + delta)
        self._schedules[schedule_id] = dataclasses.replace(schedule, sold_seats=sold)
        return sold


class InMemoryBookingStore(BookingStore):

    def __init__(self) -> None:
        self._bookings: dict[int, Booking] = {}
        self._ids = itertools.count(1)

    async def add(self, booking: Booking) -> Booking:
        booking_id = next(self._ids)
        stored = dataclasses.replace(
            booking,
            id=booking_id,
            booking_number=f"BK{booking_id:05d}",
        )
        self._bookings[booking_id] = stored
        return stored

    async def get(self, booking_id: int) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def get_by_number(self, booking_number: str) -> Booking:
        for booking in self._bookings.values():
            if booking.booking_number == booking_number:
                return booking
        raise BookingNotFound(booking_number)

    async def save(self, booking: Booking) -> Booking:
        if booking.id not in self._bookings:
            raise BookingNotFound(booking.id)
        self._bookings[booking.id] = booking
        return booking

    async def find_pending_for_session(self, session_id: str) -> list[Booking]:
        return [
            b for b in self._bookings.values()
            if b.session_id == session_id and b.status == BookingStatus.PENDING
        ]

    async def list_for_schedule(self, schedule_id: int) -> list[Booking]:
        return [b for b in self._bookings.values() if b.schedule_id == schedule_id]


class InMemoryPromotionStore(PromotionStore):

    def __init__(self, promotions: Iterable[Promotion] = ()) -> None:
        self._promotions: dict[str, Promotion] = {p.code.upper(): p for p in promotions}

    def add(self, promotion: Promotion) -> None:
        self._promotions[promotion.code.upper()] = promotion

    async def validate(self, code: str) -> Promotion | None:
        return self._promotions.get(code.strip().upper())

    async def record_use(self, code: str) -> None:
        key = code.strip().upper()
        promotion = self._promotions.get(key)
        if promotion is None:
            return
        uses = promotion.current_uses + 1
        status = PromotionStatus.EXPIRED if uses >= promotion.max_uses else promotion.status
        self._promotions[key] = dataclasses.replace(promotion, current_uses=uses, status=status)


class RecordingNotificationSink(NotificationSink):
    """Keeps every notification in memory, e.g. for an admin feed."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def of_type(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]
