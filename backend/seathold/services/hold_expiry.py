"""
Hold expiry scheduling.

EXPIRY STRATEGY: one delay queue keyed by session id
=====================================================

Every held seat carries the same deadline as its session, so one entry per
session is enough: when it fires, the reservation manager looks up which
seats the session still holds and releases exactly those.

  - schedule(session_id, deadline) replaces any earlier deadline
  - cancel(session_id) drops it (release, extend, booking confirmation)
  - stale heap entries are skipped lazily when popped

A fired entry whose session was already released or re-armed is a no-op,
because the manager re-checks the session's own expiry under the schedule
lock before touching any seat.
"""

import asyncio
import heapq
import itertools
from datetime import datetime
from typing import Awaitable, Callable

from seathold.core.clock import Clock, utcnow
from seathold.core.logging import get_logger

logger = get_logger(__name__)

ExpiryCallback = Callable[[str], Awaitable[None]]


class HoldExpiryQueue:

    def __init__(self, clock: Clock = utcnow, max_sleep_seconds: float = 1.0) -> None:
        self._clock = clock
        self._max_sleep = max_sleep_seconds
        self._heap: list[tuple[datetime, int, str]] = []
        self._deadlines: dict[str, datetime] = {}
        self._counter = itertools.count()
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._deadlines)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._deadlines

    def schedule(self, session_id: str, deadline: datetime) -> None:
        self._deadlines[session_id] = deadline
        heapq.heappush(self._heap, (deadline, next(self._counter), session_id))
        self._wakeup.set()

    def cancel(self, session_id: str) -> None:
        self._deadlines.pop(session_id, None)

    def deadline_for(self, session_id: str) -> datetime | None:
        return self._deadlines.get(session_id)

    def pop_due(self, now: datetime | None = None) -> list[str]:
        """Remove and return every session whose deadline has passed."""
        now = now or self._clock()
        due: list[str] = []
        while self._heap and self._heap[0][0] <= now:
            deadline, _, session_id = heapq.heappop(self._heap)
            if self._deadlines.get(session_id) == deadline:
                del self._deadlines[session_id]
                due.append(session_id)
        return due

    def _seconds_until_next(self) -> float:
        while self._heap:
            deadline, _, session_id = self._heap[0]
            if self._deadlines.get(session_id) != deadline:
                heapq.heappop(self._heap)
                continue
            return max(0.0, (deadline - self._clock()).total_seconds())
        return self._max_sleep

    async def run(self, on_expire: ExpiryCallback) -> None:
        """Fire on_expire for each due session until cancelled."""
        while True:
            # Cleared before draining so a schedule() made by a callback wakes the next wait
            self._wakeup.clear()
            for session_id in self.pop_due():
                try:
                    await on_expire(session_id)
                except Exception as e:
                    logger.error("hold_expiry_failed", session_id=session_id, error=str(e))
            timeout = min(self._seconds_until_next(), self._max_sleep)
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass

    def start(self, on_expire: ExpiryCallback) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(on_expire))
            logger.info("hold_expiry_worker_started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("hold_expiry_worker_stopped")
