"""
Keeps an open seat-selection view in step with the authoritative seat map.

Two paths feed a ClientSeatView:

  - push: the view subscribes to the schedule's SeatEventBus channel and
    applies each SeatStatusChanged as it arrives
  - poll: every SYNC_POLL_INTERVAL_SECONDS (and whenever no event arrived
    within that interval) the full map is fetched and merged, which repairs
    anything a dropped event left behind

Merging never overwrites a seat the local shopper has selected while the
store shows it free or held by the shopper's own session. If the store shows
a selected seat held or sold by someone else, the selection is lost and the
seat is overwritten. Seats missing from a fetch are kept, never dropped.
"""

import asyncio
import dataclasses
from dataclasses import dataclass, field

from seathold.core.logging import get_logger
from seathold.core.metrics import record_sync_poll
from seathold.domain.errors import NotFoundError
from seathold.domain.models import Seat, SeatMap, SeatStatus
from seathold.services.seat_events import SeatEventBus, SeatStatusChanged
from seathold.stores.interfaces import SeatMapStore

logger = get_logger(__name__)


@dataclass
class MergeResult:
    changed: list[str] = field(default_factory=list)
    lost_selection: list[str] = field(default_factory=list)


@dataclass
class PollResult:
    schedule_id: int
    changed: list[Seat] = field(default_factory=list)
    lost_selection: list[str] = field(default_factory=list)
    received: int = 0
    expected: int = 0
    needs_refresh: bool = False
    refetched: bool = False
    stale: bool = False
    warning: str | None = None


class ClientSeatView:
    """One shopper's cached copy of a seat map plus their local selection."""

    def __init__(self, schedule_id: int, session_id: str | None = None) -> None:
        self.schedule_id = schedule_id
        self.session_id = session_id
        self.seats: dict[str, Seat] = {}
        self.selected: set[str] = set()
        self.expected_total = 0
        self.version = -1
        self.needs_refresh = False
        self.stale = False
        self.warning: str | None = None

    def select(self, seat_id: str) -> None:
        seat = self.seats.get(seat_id)
        if seat is None or not (seat.is_available or self._owned(seat)):
            raise ValueError(f"Seat {seat_id} cannot be selected")
        self.selected.add(seat_id)

    def deselect(self, seat_id: str) -> None:
        self.selected.discard(seat_id)

    def display_status(self, seat_id: str) -> SeatStatus:
        if seat_id in self.selected:
            return SeatStatus.SELECTED
        return self.seats[seat_id].status

    def rows(self) -> list[list[tuple[Seat, SeatStatus]]]:
        by_row: dict[str, list[tuple[Seat, SeatStatus]]] = {}
        for seat in self.seats.values():
            by_row.setdefault(seat.row, []).append((seat, self.display_status(seat.seat_id)))
        return [
            sorted(by_row[row], key=lambda item: item[0].number)
            for row in sorted(by_row, key=lambda r: (len(r), r))
        ]

    def _owned(self, seat: Seat) -> bool:
        return self.session_id is not None and seat.held_by == self.session_id

    def apply_seat(self, remote: Seat, result: MergeResult) -> None:
        seat_id = remote.seat_id
        if seat_id in self.selected:
            if remote.status == SeatStatus.AVAILABLE or self._owned(remote):
                # Local selection wins; still pick up price changes
                local = self.seats.get(seat_id)
                if local is not None and local.price != remote.price:
                    self.seats[seat_id] = dataclasses.replace(local, price=remote.price)
                    result.changed.append(seat_id)
                return
            self.selected.discard(seat_id)
            result.lost_selection.append(seat_id)

        if self.seats.get(seat_id) != remote:
            self.seats[seat_id] = remote
            result.changed.append(seat_id)

    def merge(self, seat_map: SeatMap) -> MergeResult:
        result = MergeResult()
        for seat in seat_map.seats:
            self.apply_seat(seat, result)
        self.expected_total = seat_map.expected_total
        self.version = seat_map.version
        return result

    def apply_event(self, event: SeatStatusChanged) -> MergeResult:
        result = MergeResult()
        local = self.seats.get(event.seat_id)
        if local is None:
            # Unknown seat: only a full fetch can place it
            self.needs_refresh = True
            return result
        remote = dataclasses.replace(local, status=event.status, held_by=event.held_by, price=event.price)
        self.apply_seat(remote, result)
        return result


class AvailabilitySynchronizer:

    def __init__(
        self,
        seat_store: SeatMapStore,
        events: SeatEventBus,
        poll_interval: float = 5.0,
        max_retries: int = 3,
        refetch_ratio: float = 0.9,
        retry_delay: float = 0.2,
    ) -> None:
        self._seats = seat_store
        self._events = events
        self._interval = poll_interval
        self._max_retries = max_retries
        self._refetch_ratio = refetch_ratio
        self._retry_delay = retry_delay

    @property
    def poll_interval(self) -> float:
        return self._interval

    async def _fetch(self, schedule_id: int) -> SeatMap | None:
        for attempt in range(1, self._max_retries + 1):
            try:
                return await self._seats.get_seat_map(schedule_id)
            except NotFoundError:
                raise
            except Exception as e:
                logger.info(
                    "seat_map_poll_retry",
                    schedule_id=schedule_id,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt < self._max_retries and self._retry_delay:
                    await asyncio.sleep(self._retry_delay)
        return None

    async def poll(self, view: ClientSeatView) -> PollResult:
        """Fetch the authoritative map and merge it into the view.

        Raises:
            ScheduleNotFound: Unknown schedule (not retried).
        """
        seat_map = await self._fetch(view.schedule_id)
        if seat_map is None:
            view.stale = True
            view.warning = "Seat availability may be out of date, retrying shortly"
            record_sync_poll("stale")
            logger.warning("seat_map_stale", schedule_id=view.schedule_id, retries=self._max_retries)
            return PollResult(
                schedule_id=view.schedule_id,
                received=len(view.seats),
                expected=view.expected_total,
                needs_refresh=view.needs_refresh,
                stale=True,
                warning=view.warning,
            )

        refetched = False
        expected = seat_map.expected_total
        if expected and seat_map.seat_count() < expected * self._refetch_ratio:
            logger.warning(
                "seat_map_incomplete",
                schedule_id=view.schedule_id,
                received=seat_map.seat_count(),
                expected=expected,
            )
            again = await self._fetch(view.schedule_id)
            if again is not None:
                seat_map = again
                refetched = True

        received = seat_map.seat_count()
        merged = view.merge(seat_map)
        view.needs_refresh = received != seat_map.expected_total
        view.stale = False
        view.warning = None

        if merged.lost_selection:
            logger.info(
                "selection_lost",
                schedule_id=view.schedule_id,
                session_id=view.session_id,
                seat_ids=merged.lost_selection,
            )
        record_sync_poll("refetch" if refetched else "ok")
        return PollResult(
            schedule_id=view.schedule_id,
            changed=[view.seats[seat_id] for seat_id in merged.changed],
            lost_selection=merged.lost_selection,
            received=received,
            expected=seat_map.expected_total,
            needs_refresh=view.needs_refresh,
            refetched=refetched,
        )

    async def follow(self, view: ClientSeatView, stop: asyncio.Event | None = None, on_change=None) -> None:
        """Keep a view current until stop is set or the task is cancelled.

        Events are applied as they arrive; a poll runs first and then
        whenever a full interval passes without events.
        """
        stop = stop or asyncio.Event()
        queue = self._events.subscribe(view.schedule_id)
        try:
            result = await self.poll(view)
            if on_change is not None:
                await on_change(result)
            while not stop.is_set():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self._interval)
                except asyncio.TimeoutError:
                    result = await self.poll(view)
                else:
                    if event.seat_id not in view.seats:
                        result = await self.poll(view)
                        if on_change is not None:
                            await on_change(result)
                        continue
                    merged = view.apply_event(event)
                    result = PollResult(
                        schedule_id=view.schedule_id,
                        changed=[view.seats[seat_id] for seat_id in merged.changed],
                        lost_selection=merged.lost_selection,
                        received=len(view.seats),
                        expected=view.expected_total,
                        needs_refresh=view.needs_refresh,
                    )
                if on_change is not None and (result.changed or result.lost_selection or result.stale):
                    await on_change(result)
        finally:
            self._events.unsubscribe(view.schedule_id, queue)
