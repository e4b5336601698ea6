"""
Seat map generation and consistency reporting.

Venue capacity (the schedule's seat_total) is the authority. A generated map
never has more seats than the capacity, and the consistency report only
describes mismatches: it does not rewrite capacity or sold counts.
"""

import math
import string
from collections import Counter
from dataclasses import dataclass, field

from seathold.core.logging import get_logger
from seathold.domain.errors import InvalidSeatSelection
from seathold.domain.models import Seat, SeatCategory, SeatMap, SeatStatus
from seathold.stores.interfaces import ScheduleProvider, SeatMapStore

logger = get_logger(__name__)


def row_label(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, ..."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = string.ascii_uppercase[remainder] + letters
    return letters


@dataclass(frozen=True)
class VenueLayout:
    """How a venue's seats are laid out.

    Front rows are VIP, the next band PREMIUM, the rest STANDARD. Band sizes
    default to 20% and 30% of the rows, at least one row each.
    """

    seats_per_row: int = 15
    vip_rows: int | None = None
    premium_rows: int | None = None
    disabled_seats: frozenset[str] = field(default_factory=frozenset)
    maintenance_seats: frozenset[str] = field(default_factory=frozenset)

    def category_for(self, row_index: int, total_rows: int) -> SeatCategory:
        vip = self.vip_rows if self.vip_rows is not None else max(1, int(total_rows * 0.2))
        premium = self.premium_rows if self.premium_rows is not None else max(1, int(total_rows * 0.3))
        if row_index < vip:
            return SeatCategory.VIP
        if row_index < vip + premium:
            return SeatCategory.PREMIUM
        return SeatCategory.STANDARD


@dataclass(frozen=True)
class ConsistencyReport:
    schedule_id: int
    capacity: int
    seat_count: int
    status_counts: dict[str, int]
    recorded_sold: int
    discrepancies: list[str]

    @property
    def consistent(self) -> bool:
        return not self.discrepancies


class SeatMapService:

    def __init__(self, seat_store: SeatMapStore, schedules: ScheduleProvider) -> None:
        self._seats = seat_store
        self._schedules = schedules

    async def get_seat_map(self, schedule_id: int) -> SeatMap:
        return await self._seats.get_seat_map(schedule_id)

    def build_seats(self, capacity: int, layout: VenueLayout) -> list[Seat]:
        if layout.seats_per_row <= 0:
            raise InvalidSeatSelection("seats_per_row must be positive")
        total_rows = math.ceil(capacity / layout.seats_per_row) if capacity > 0 else 0

        seats: list[Seat] = []
        for row_index in range(total_rows):
            label = row_label(row_index)
            category = layout.category_for(row_index, total_rows)
            in_row = min(layout.seats_per_row, capacity - len(seats))
            for number in range(1, in_row + 1):
                seat_id = f"{label}{number}"
                status = SeatStatus.AVAILABLE
                if seat_id in layout.disabled_seats:
                    status = SeatStatus.DISABLED
                elif seat_id in layout.maintenance_seats:
                    status = SeatStatus.MAINTENANCE
                seats.append(Seat(seat_id=seat_id, row=label, number=number, category=category, status=status))
        return seats

    async def generate(self, schedule_id: int, layout: VenueLayout | None = None) -> SeatMap:
        """Create the seat map of a schedule from its venue capacity.

        Raises:
            SeatMapInUse: The current map still has RESERVED or SOLD seats.
        """
        schedule = await self._schedules.get_schedule(schedule_id)
        seats = self.build_seats(schedule.seat_total, layout or VenueLayout())
        seat_map = await self._seats.add_seats(schedule_id, seats, expected_total=schedule.seat_total)
        logger.info(
            "seat_map_generated",
            schedule_id=schedule_id,
            seats=len(seats),
            rows=len(seat_map.rows),
        )
        return seat_map


class SeatConsistencyService:
    """Compares a schedule's seat map against venue capacity and sold count."""

    def __init__(self, seat_store: SeatMapStore, schedules: ScheduleProvider) -> None:
        self._seats = seat_store
        self._schedules = schedules

    async def report(self, schedule_id: int) -> ConsistencyReport:
        schedule = await self._schedules.get_schedule(schedule_id)
        seat_map = await self._seats.get_seat_map(schedule_id)
        counts = Counter(seat.status for seat in seat_map.seats)
        seat_count = seat_map.seat_count()

        discrepancies: list[str] = []
        if seat_count != schedule.seat_total:
            discrepancies.append(
                f"Seat map has {seat_count} seats but venue capacity is {schedule.seat_total}"
            )
        if counts[SeatStatus.SOLD] != schedule.sold_seats:
            discrepancies.append(
                f"{counts[SeatStatus.SOLD]} seats are SOLD but the schedule records {schedule.sold_seats} sold"
            )

        if discrepancies:
            logger.warning("seat_map_inconsistent", schedule_id=schedule_id, discrepancies=discrepancies)

        return ConsistencyReport(
            schedule_id=schedule_id,
            capacity=schedule.seat_total,
            seat_count=seat_count,
            status_counts={status.value: counts[status] for status in SeatStatus if status != SeatStatus.SELECTED},
            recorded_sold=schedule.sold_seats,
            discrepancies=discrepancies,
        )
