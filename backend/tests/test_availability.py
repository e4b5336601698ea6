"""
Tests for keeping an open seat picker in step with the seat map.
"""

import asyncio
import dataclasses
from decimal import Decimal

import pytest

from seathold.domain.errors import ScheduleNotFound
from seathold.domain.models import SeatStatus
from seathold.services.availability_service import AvailabilitySynchronizer, ClientSeatView
from seathold.services.seat_events import SeatStatusChanged
from seathold.stores.memory import InMemorySeatMapStore

from conftest import CONCERT_ID, MOVIE_ID


def synchronizer(core, store=None, **kwargs) -> AvailabilitySynchronizer:
    kwargs.setdefault("retry_delay", 0)
    return AvailabilitySynchronizer(store or core.seat_store, core.events, **kwargs)


class PartialSeatStore(InMemorySeatMapStore):
    """Serves only some rows on the first few reads, like a truncated response."""

    def __init__(self, source: InMemorySeatMapStore, partial_reads: int, keep_rows: int) -> None:
        super().__init__()
        self.source = source
        self.partial_reads = partial_reads
        self.keep_rows = keep_rows
        self.reads = 0

    async def get_seat_map(self, schedule_id):
        seat_map = await self.source.get_seat_map(schedule_id)
        self.reads += 1
        if self.reads <= self.partial_reads:
            return dataclasses.replace(seat_map, rows=seat_map.rows[: self.keep_rows])
        return seat_map


class FlakySeatStore(InMemorySeatMapStore):
    """Fails a number of reads before recovering."""

    def __init__(self, source: InMemorySeatMapStore, failures: int) -> None:
        super().__init__()
        self.source = source
        self.failures = failures
        self.reads = 0

    async def get_seat_map(self, schedule_id):
        self.reads += 1
        if self.reads <= self.failures:
            raise ConnectionError("seat map backend unavailable")
        return await self.source.get_seat_map(schedule_id)


@pytest.mark.asyncio
async def test_first_poll_fills_view(core):
    view = ClientSeatView(CONCERT_ID)

    result = await synchronizer(core).poll(view)

    assert result.received == 20
    assert result.expected == 20
    assert not result.needs_refresh
    assert len(view.seats) == 20
    assert [len(row) for row in view.rows()] == [5, 5, 5, 5]


@pytest.mark.asyncio
async def test_own_selection_survives_poll(core):
    view = ClientSeatView(CONCERT_ID)
    sync = synchronizer(core)
    await sync.poll(view)
    view.select("C1")
    session = await core.reservations.reserve(CONCERT_ID, ["C1"])
    view.session_id = session.session_id

    result = await sync.poll(view)

    assert result.lost_selection == []
    assert view.display_status("C1") == SeatStatus.SELECTED


@pytest.mark.asyncio
async def test_selection_lost_when_seat_taken_elsewhere(core):
    view = ClientSeatView(CONCERT_ID)
    sync = synchronizer(core)
    await sync.poll(view)
    view.select("C1")
    view.select("C2")

    other = await core.reservations.reserve(CONCERT_ID, ["C2"])
    result = await sync.poll(view)

    assert result.lost_selection == ["C2"]
    assert view.selected == {"C1"}
    assert view.display_status("C2") == SeatStatus.RESERVED
    assert view.seats["C2"].held_by == other.session_id
    assert "C2" in [seat.seat_id for seat in result.changed]


@pytest.mark.asyncio
async def test_cannot_select_unavailable_seat(core):
    view = ClientSeatView(CONCERT_ID)
    sync = synchronizer(core)
    await core.reservations.reserve(CONCERT_ID, ["D5"])
    await sync.poll(view)

    with pytest.raises(ValueError):
        view.select("D5")
    with pytest.raises(ValueError):
        view.select("Z1")


@pytest.mark.asyncio
async def test_short_read_triggers_refetch(core):
    store = PartialSeatStore(core.seat_store, partial_reads=1, keep_rows=2)
    view = ClientSeatView(CONCERT_ID)

    result = await synchronizer(core, store).poll(view)

    assert result.refetched
    assert result.received == 20
    assert not result.needs_refresh
    assert store.reads == 2


@pytest.mark.asyncio
async def test_incomplete_map_flags_refresh_and_keeps_seats(core):
    sync = synchronizer(core)
    view = ClientSeatView(CONCERT_ID)
    await sync.poll(view)

    store = PartialSeatStore(core.seat_store, partial_reads=2, keep_rows=3)
    result = await synchronizer(core, store).poll(view)

    assert result.received == 15
    assert result.expected == 20
    assert result.needs_refresh
    assert view.needs_refresh
    # Seats missing from the short read are kept, not dropped
    assert len(view.seats) == 20


@pytest.mark.asyncio
async def test_small_shortfall_does_not_refetch(core):
    # 19 of 20 is above the 90% refetch threshold
    await core.seat_store.add_seats(
        CONCERT_ID,
        [seat for seat in (await core.seat_store.get_seat_map(CONCERT_ID)).seats if seat.seat_id != "D5"],
        expected_total=20,
    )
    view = ClientSeatView(CONCERT_ID)

    result = await synchronizer(core).poll(view)

    assert not result.refetched
    assert result.needs_refresh


@pytest.mark.asyncio
async def test_transient_failures_are_retried(core):
    store = FlakySeatStore(core.seat_store, failures=2)
    view = ClientSeatView(CONCERT_ID)

    result = await synchronizer(core, store, max_retries=3).poll(view)

    assert not result.stale
    assert result.received == 20
    assert store.reads == 3


@pytest.mark.asyncio
async def test_exhausted_retries_mark_view_stale(core):
    sync = synchronizer(core)
    view = ClientSeatView(CONCERT_ID)
    await sync.poll(view)

    store = FlakySeatStore(core.seat_store, failures=10)
    result = await synchronizer(core, store, max_retries=3).poll(view)

    assert result.stale
    assert view.stale
    assert result.warning
    assert store.reads == 3
    # Cached seats stay on screen
    assert len(view.seats) == 20

    recovered = await sync.poll(view)
    assert not recovered.stale
    assert view.warning is None


@pytest.mark.asyncio
async def test_unknown_schedule_is_not_retried(core):
    with pytest.raises(ScheduleNotFound):
        await synchronizer(core).poll(ClientSeatView(999))


@pytest.mark.asyncio
async def test_event_for_unknown_seat_requests_refresh(core):
    view = ClientSeatView(MOVIE_ID)
    await synchronizer(core).poll(view)

    result = view.apply_event(SeatStatusChanged(MOVIE_ID, "Q9", SeatStatus.SOLD))

    assert result.changed == []
    assert view.needs_refresh


@pytest.mark.asyncio
async def test_price_change_reaches_selected_seat(core):
    view = ClientSeatView(MOVIE_ID)
    await synchronizer(core).poll(view)
    view.select("A1")

    result = view.apply_event(SeatStatusChanged(MOVIE_ID, "A1", SeatStatus.AVAILABLE, price=Decimal("300")))

    assert result.changed == ["A1"]
    assert view.seats["A1"].price == Decimal("300")
    assert view.display_status("A1") == SeatStatus.SELECTED


@pytest.mark.asyncio
async def test_follow_applies_pushed_events(core):
    sync = synchronizer(core)
    view = ClientSeatView(CONCERT_ID)
    updates = []
    changed = asyncio.Event()

    async def on_change(result):
        updates.append(result)
        if any(seat.seat_id == "B2" for seat in result.changed):
            changed.set()

    task = asyncio.create_task(sync.follow(view, on_change=on_change))
    for _ in range(100):
        if core.events.subscriber_count(CONCERT_ID) and view.seats:
            break
        await asyncio.sleep(0.01)

    session = await core.reservations.reserve(CONCERT_ID, ["B2"])
    await asyncio.wait_for(changed.wait(), timeout=2)

    assert view.seats["B2"].status == SeatStatus.RESERVED
    assert view.seats["B2"].held_by == session.session_id

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert core.events.subscriber_count(CONCERT_ID) == 0


@pytest.mark.asyncio
async def test_follow_stops_on_event(core):
    sync = synchronizer(core)
    view = ClientSeatView(MOVIE_ID)
    stop = asyncio.Event()

    task = asyncio.create_task(sync.follow(view, stop=stop))
    for _ in range(100):
        if view.seats:
            break
        await asyncio.sleep(0.01)
    stop.set()
    # Wake the loop so it sees the stop flag
    await core.reservations.reserve(MOVIE_ID, ["A1"])

    await asyncio.wait_for(task, timeout=2)
    assert core.events.subscriber_count(MOVIE_ID) == 0
