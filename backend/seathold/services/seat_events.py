"""
Per-schedule publish/subscribe channel for seat status changes.

The reservation manager and booking service publish a SeatStatusChanged for
every seat they touch; availability views subscribe to the schedule they
display. Each subscriber gets a bounded queue: a slow consumer loses events
(counted and logged) instead of blocking publishers, and recovers through a
full reconciliation poll.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from seathold.core.logging import get_logger
from seathold.core.metrics import seat_events_dropped
from seathold.domain.models import SeatStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class SeatStatusChanged:
    schedule_id: int
    seat_id: str
    status: SeatStatus
    held_by: str | None = None
    price: Decimal | None = None


class SeatEventBus:

    def __init__(self, buffer_size: int = 100) -> None:
        self._buffer_size = buffer_size
        self._subscribers: dict[int, list[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, schedule_id: int) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._buffer_size)
        self._subscribers[schedule_id].append(queue)
        logger.debug(
            "seat_events_subscribed",
            schedule_id=schedule_id,
            subscribers=len(self._subscribers[schedule_id]),
        )
        return queue

    def unsubscribe(self, schedule_id: int, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(schedule_id)
        if not subscribers:
            return
        if queue in subscribers:
            subscribers.remove(queue)
        if not subscribers:
            del self._subscribers[schedule_id]

    def subscriber_count(self, schedule_id: int) -> int:
        return len(self._subscribers.get(schedule_id, ()))

    def publish(self, event: SeatStatusChanged) -> None:
        subscribers = self._subscribers.get(event.schedule_id)
        if not subscribers:
            return
        dropped = 0
        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                dropped += 1
        if dropped:
            seat_events_dropped.inc(dropped)
            logger.warning(
                "seat_events_dropped",
                schedule_id=event.schedule_id,
                seat_id=event.seat_id,
                dropped=dropped,
            )
