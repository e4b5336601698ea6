"""
Seat reservation with time-bounded, session-scoped holds.

CONCURRENCY STRATEGY: Per-schedule lock around check-and-set
============================================================

Problem:
  Two shoppers select overlapping seats of the same show at the same time.
  Both read A2 as AVAILABLE, both mark it RESERVED, both believe they hold it.

Solution:
  Every mutation of a schedule's seats (reserve, release, expiry, sale)
  runs under one asyncio.Lock per schedule:

  1. Read every requested seat
  2. Fail the whole call with SeatConflict if any seat is RESERVED or SOLD
     by someone other than the caller's own live session
  3. Mark all seats RESERVED with the new session id
  4. Register the session and arm its expiry deadline

  Nothing awaits the network while the lock is held; payment capture
  happens outside and only the final RESERVED -> SOLD flip is locked.

  In front of the lock sits the SeatGate. The local gate admits
  everything; the Redis gate lets several processes reject contended seats
  before touching the store. The lock only serializes this process; every
  hold is written with a conditional store update (claim_seat) that fails
  with SeatConflict when another process got there first, and releases and
  sales only touch seats the session still holds (settle_hold).

Hold lifetime:
  - reserve always issues a new session id and replaces the caller's
    previous session for that schedule (old seats not re-requested go back
    to AVAILABLE)
  - release_seats shrinks a hold in place; an emptied hold is destroyed
  - the expiry queue fires once per session; a fired deadline for a session
    that was released or replaced in the meantime is a no-op
  - every hold persists its deadline with the seat (held_until); a RESERVED
    seat is reclaimed by the next reserve only once that deadline has
    passed, whichever process created the hold
  - releasing or replacing a hold notifies release listeners (bookings
    still PENDING for the session are expired there)
"""

import asyncio
import time
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable

from seathold.core.clock import Clock, utcnow
from seathold.core.logging import get_logger
from seathold.core.metrics import (
    active_holds,
    hold_expirations,
    record_reservation_attempt,
    reservation_latency,
)
from seathold.domain.errors import (
    InvalidSeatSelection,
    SeatConflict,
    SeatNoLongerHeld,
    SessionExpired,
)
from seathold.domain.models import ReservationSession, Seat, SeatStatus
from seathold.services.hold_expiry import HoldExpiryQueue
from seathold.services.interfaces.seat_gate import SeatGate
from seathold.services.notification_service import Notifier
from seathold.services.seat_events import SeatEventBus, SeatStatusChanged
from seathold.stores.interfaces import SeatMapStore

logger = get_logger(__name__)

HoldListener = Callable[[ReservationSession], Awaitable[None]]


def normalize_seat_ids(seat_ids: Iterable[str]) -> list[str]:
    """Strip, uppercase and de-duplicate while keeping the caller's order."""
    seen: dict[str, None] = {}
    for seat_id in seat_ids:
        cleaned = seat_id.strip().upper()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class ReservationManager:

    def __init__(
        self,
        seat_store: SeatMapStore,
        gate: SeatGate,
        expiry: HoldExpiryQueue,
        events: SeatEventBus,
        notifier: Notifier,
        hold_seconds: int = 300,
        max_seats: int = 10,
        clock: Clock = utcnow,
    ) -> None:
        self._seats = seat_store
        self._gate = gate
        self._expiry = expiry
        self._events = events
        self._notifier = notifier
        self._hold = timedelta(seconds=hold_seconds)
        self._hold_seconds = hold_seconds
        self._max_seats = max_seats
        self._clock = clock
        self._sessions: dict[str, ReservationSession] = {}
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._expiry_listeners: list[HoldListener] = []
        self._release_listeners: list[HoldListener] = []

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        self._expiry.start(self.expire)

    async def stop(self) -> None:
        await self._expiry.stop()

    def add_expiry_listener(self, listener: HoldListener) -> None:
        """Called after a hold lapsed (timer or lazy reclamation)."""
        self._expiry_listeners.append(listener)

    def add_release_listener(self, listener: HoldListener) -> None:
        """Called after a hold was released, emptied or replaced by a newer hold."""
        self._release_listeners.append(listener)

    def schedule_lock(self, schedule_id: int) -> asyncio.Lock:
        return self._locks[schedule_id]

    # -- queries -------------------------------------------------------------

    def peek_session(self, session_id: str | None) -> ReservationSession | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    async def get_session(self, session_id: str) -> ReservationSession:
        """Return a live session.

        Raises:
            SessionExpired: The session never existed, was released or has lapsed.
        """
        session = self._sessions.get(session_id)
        if session is None or session.is_expired(self._clock()):
            raise SessionExpired(session_id)
        return session

    def active_sessions(self, schedule_id: int | None = None) -> list[ReservationSession]:
        now = self._clock()
        return [
            s for s in self._sessions.values()
            if not s.is_expired(now) and (schedule_id is None or s.schedule_id == schedule_id)
        ]

    # -- reserve -------------------------------------------------------------

    async def reserve(
        self,
        schedule_id: int,
        seat_ids: Iterable[str],
        existing_session_id: str | None = None,
    ) -> ReservationSession:
        """Hold every requested seat for a new session, or none of them.

        Seats already held by existing_session_id do not conflict; that
        session is replaced by the returned one.

        Raises:
            InvalidSeatSelection: Empty or oversized selection.
            SeatConflict: Some seats are held or sold by another session.
            ScheduleNotFound, SeatNotFound: Unknown schedule or seat.
        """
        requested = normalize_seat_ids(seat_ids)
        if not requested:
            raise InvalidSeatSelection("Select at least one seat")
        if len(requested) > self._max_seats:
            raise InvalidSeatSelection(
                f"At most {self._max_seats} seats can be held at once",
                requested=len(requested),
                limit=self._max_seats,
            )

        previous = self.peek_session(existing_session_id)
        if previous is not None and previous.schedule_id != schedule_id:
            # A token from another show only means the shopper switched shows
            await self.release(previous.session_id)
            previous = None

        started = time.perf_counter()
        session_id = uuid.uuid4().hex
        lapsed: list[ReservationSession] = []
        replaced: list[ReservationSession] = []
        try:
            conflicts = await self._gate.acquire(
                schedule_id,
                requested,
                session_id,
                self._hold_seconds,
                previous_session_id=previous.session_id if previous else None,
            )
            if conflicts:
                raise SeatConflict(schedule_id, conflicts)

            async with self.schedule_lock(schedule_id):
                session = await self._reserve_locked(schedule_id, requested, session_id, previous, lapsed, replaced)
        except SeatConflict as e:
            record_reservation_attempt("conflict")
            logger.info(
                "reservation_conflict",
                schedule_id=schedule_id,
                seat_ids=e.seat_ids,
            )
            await self._gate.release(schedule_id, requested, session_id)
            raise
        except (Exception, asyncio.CancelledError):
            record_reservation_attempt("error")
            await self._gate.release(schedule_id, requested, session_id)
            raise
        finally:
            reservation_latency.observe(time.perf_counter() - started)
            # Holds reclaimed under the lock stay expired even if this call failed
            for stale in lapsed:
                await self._after_expiry(stale)

        record_reservation_attempt("success")
        for old in replaced:
            await self._gate.release(schedule_id, sorted(old.seat_ids - session.seat_ids), old.session_id)
            await self._after_release(old)

        logger.info(
            "seats_reserved",
            schedule_id=schedule_id,
            session_id=session_id,
            seat_ids=requested,
            replaced_session_id=replaced[0].session_id if replaced else None,
            expires_at=session.expires_at.isoformat(),
        )
        return session

    async def _reserve_locked(
        self,
        schedule_id: int,
        requested: list[str],
        session_id: str,
        previous: ReservationSession | None,
        lapsed: list[ReservationSession],
        replaced: list[ReservationSession],
    ) -> ReservationSession:
        now = self._clock()
        if previous is not None:
            # Re-read under the lock: the timer may have fired meanwhile
            previous = self._sessions.get(previous.session_id)
            if previous is not None and previous.is_expired(now):
                lapsed.append(await self._expire_locked(previous))
                previous = None
        owners = (session_id, previous.session_id if previous else None)

        seats = [await self._seats.get_seat(schedule_id, seat_id) for seat_id in requested]

        conflicting: list[str] = []
        stale_holders: set[str] = set()
        for seat in seats:
            if not seat.claimable_by(owners, now):
                # Includes live holds of sessions owned by other processes
                conflicting.append(seat.seat_id)
            elif seat.status == SeatStatus.RESERVED and seat.held_by not in owners:
                if seat.held_by in self._sessions:
                    stale_holders.add(seat.held_by)

        if conflicting:
            raise SeatConflict(schedule_id, conflicting)

        for holder_id in stale_holders:
            lapsed.append(await self._expire_locked(self._sessions[holder_id]))

        expires_at = now + self._hold
        await self._write_holds(schedule_id, seats, session_id, expires_at, now, previous)

        if previous is not None:
            for seat_id in sorted(previous.seat_ids - set(requested)):
                await self._settle(schedule_id, seat_id, previous.session_id, SeatStatus.AVAILABLE)
            self._drop_session(previous.session_id)
            replaced.append(previous)

        session = ReservationSession(
            session_id=session_id,
            schedule_id=schedule_id,
            seat_ids=frozenset(requested),
            created_at=now,
            expires_at=expires_at,
        )
        self._sessions[session_id] = session
        self._expiry.schedule(session_id, session.expires_at)
        active_holds.set(len(self._sessions))
        return session

    async def _write_holds(
        self,
        schedule_id: int,
        seats: list[Seat],
        session_id: str,
        expires_at: datetime,
        now: datetime,
        previous: ReservationSession | None,
    ) -> None:
        previous_id = previous.session_id if previous else None
        written: list[Seat] = []
        try:
            for seat in seats:
                # The store re-checks the seat: another process may have claimed it since the read
                if await self._claim(schedule_id, seat.seat_id, session_id, expires_at, now, previous_id) is None:
                    raise SeatConflict(schedule_id, [seat.seat_id])
                written.append(seat)
        except (Exception, asyncio.CancelledError):
            # Put back exactly what was overwritten so no partial hold leaks
            for seat in written:
                if previous is not None and seat.held_by == previous.session_id:
                    await self._claim(schedule_id, seat.seat_id, previous_id, previous.expires_at, now, session_id)
                else:
                    await self._settle(schedule_id, seat.seat_id, session_id, SeatStatus.AVAILABLE)
            logger.warning(
                "reservation_rolled_back",
                schedule_id=schedule_id,
                session_id=session_id,
                rolled_back=[seat.seat_id for seat in written],
            )
            raise

    # -- release / extend ----------------------------------------------------

    async def release(self, session_id: str) -> bool:
        """Free every seat of a session. Unknown or lapsed sessions are a no-op.

        Returns:
            True if a live hold was released.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False
        async with self.schedule_lock(session.schedule_id):
            session = self._sessions.get(session_id)
            if session is None:
                return False
            await self._release_locked(session)
        await self._gate.release(session.schedule_id, sorted(session.seat_ids), session_id)
        logger.info(
            "hold_released",
            schedule_id=session.schedule_id,
            session_id=session_id,
            seat_ids=sorted(session.seat_ids),
        )
        await self._after_release(session)
        return True

    async def release_seats(self, session_id: str, seat_ids: Iterable[str]) -> ReservationSession | None:
        """Deselect single seats of a hold; the rest keep their deadline.

        Returns:
            The shrunk session, or None if it became empty and was destroyed.

        Raises:
            SessionExpired: The session is not live.
        """
        session = await self.get_session(session_id)
        dropped = set(normalize_seat_ids(seat_ids)) & session.seat_ids
        if not dropped:
            return session

        async with self.schedule_lock(session.schedule_id):
            session = await self.get_session(session_id)
            dropped &= session.seat_ids
            for seat_id in sorted(dropped):
                await self._settle(session.schedule_id, seat_id, session_id, SeatStatus.AVAILABLE)
            remaining = session.seat_ids - dropped
            if remaining:
                shrunk = ReservationSession(
                    session_id=session.session_id,
                    schedule_id=session.schedule_id,
                    seat_ids=frozenset(remaining),
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                )
                self._sessions[session_id] = shrunk
            else:
                shrunk = None
                self._drop_session(session_id)

        await self._gate.release(session.schedule_id, sorted(dropped), session_id)
        if shrunk is None:
            await self._after_release(session)
        logger.info(
            "seats_deselected",
            schedule_id=session.schedule_id,
            session_id=session_id,
            seat_ids=sorted(dropped),
            session_destroyed=shrunk is None,
        )
        return shrunk

    async def extend(self, session_id: str, seat_ids: Iterable[str]) -> ReservationSession:
        """Change a hold's seats: release the old hold, then reserve anew.

        The two steps are separate, so another shopper may grab a seat in
        between; in that case SeatConflict is raised and the old hold is gone.

        Raises:
            SessionExpired: The session is not live.
        """
        session = await self.get_session(session_id)
        await self.release(session_id)
        return await self.reserve(session.schedule_id, seat_ids)

    # -- expiry --------------------------------------------------------------

    async def expire(self, session_id: str) -> bool:
        """Timer callback: release a lapsed hold and tell the shopper."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        async with self.schedule_lock(session.schedule_id):
            session = self._sessions.get(session_id)
            if session is None or not session.is_expired(self._clock()):
                return False
            await self._expire_locked(session)
        await self._after_expiry(session)
        return True

    async def expire_due(self, now: datetime | None = None) -> int:
        """Expire every session whose deadline has passed; returns how many."""
        expired = 0
        for session_id in self._expiry.pop_due(now):
            if await self.expire(session_id):
                expired += 1
        return expired

    async def _expire_locked(self, session: ReservationSession) -> ReservationSession:
        await self._release_locked(session)
        hold_expirations.inc()
        logger.info(
            "hold_expired",
            schedule_id=session.schedule_id,
            session_id=session.session_id,
            seat_ids=sorted(session.seat_ids),
        )
        return session

    async def _after_expiry(self, session: ReservationSession) -> None:
        await self._gate.release(session.schedule_id, sorted(session.seat_ids), session.session_id)
        await self._notifier.notify(
            "hold_expired",
            schedule_id=session.schedule_id,
            session_id=session.session_id,
            seat_ids=sorted(session.seat_ids),
        )
        for listener in self._expiry_listeners:
            await listener(session)

    async def _after_release(self, session: ReservationSession) -> None:
        for listener in self._release_listeners:
            await listener(session)

    # -- booking hand-off ----------------------------------------------------

    async def commit_sold(self, session_id: str) -> ReservationSession:
        """Flip a live hold's seats RESERVED -> SOLD and destroy the session.

        Raises:
            SeatNoLongerHeld: The hold lapsed or a seat is no longer held by
                this session. No seat is changed in that case.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SeatNoLongerHeld(session_id, [])

        lapsed: ReservationSession | None = None
        async with self.schedule_lock(session.schedule_id):
            session = self._sessions.get(session_id)
            if session is None:
                raise SeatNoLongerHeld(session_id, [])
            if session.is_expired(self._clock()):
                lapsed = await self._expire_locked(session)
            else:
                missing = []
                for seat_id in sorted(session.seat_ids):
                    seat = await self._seats.get_seat(session.schedule_id, seat_id)
                    if seat.status != SeatStatus.RESERVED or seat.held_by != session_id:
                        missing.append(seat_id)
                if missing:
                    raise SeatNoLongerHeld(session_id, missing)

                sold: list[str] = []
                for seat_id in sorted(session.seat_ids):
                    if await self._settle(session.schedule_id, seat_id, session_id, SeatStatus.SOLD) is None:
                        for done in sold:
                            await self._set_status(
                                session.schedule_id,
                                done,
                                SeatStatus.RESERVED,
                                held_by=session_id,
                                held_until=session.expires_at,
                            )
                        raise SeatNoLongerHeld(session_id, [seat_id])
                    sold.append(seat_id)
                self._drop_session(session_id)

        if lapsed is not None:
            await self._after_expiry(lapsed)
            raise SeatNoLongerHeld(session_id, lapsed.seat_ids)

        await self._gate.release(session.schedule_id, sorted(session.seat_ids), session_id)
        logger.info(
            "seats_sold",
            schedule_id=session.schedule_id,
            session_id=session_id,
            seat_ids=sorted(session.seat_ids),
        )
        return session

    async def release_sold(self, schedule_id: int, seat_ids: Iterable[str]) -> list[str]:
        """Return SOLD seats to AVAILABLE (cancellation, refund)."""
        released: list[str] = []
        async with self.schedule_lock(schedule_id):
            for seat_id in seat_ids:
                seat = await self._seats.get_seat(schedule_id, seat_id)
                if seat.status != SeatStatus.SOLD:
                    logger.warning(
                        "sold_seat_release_skipped",
                        schedule_id=schedule_id,
                        seat_id=seat_id,
                        status=seat.status.value,
                    )
                    continue
                await self._set_status(schedule_id, seat_id, SeatStatus.AVAILABLE)
                released.append(seat_id)
        return released

    # -- helpers (schedule lock held) ----------------------------------------

    async def _release_locked(self, session: ReservationSession) -> None:
        for seat_id in sorted(session.seat_ids):
            await self._settle(session.schedule_id, seat_id, session.session_id, SeatStatus.AVAILABLE)
        self._drop_session(session.session_id)

    def _drop_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._expiry.cancel(session_id)
        active_holds.set(len(self._sessions))

    async def _claim(
        self,
        schedule_id: int,
        seat_id: str,
        session_id: str,
        held_until: datetime,
        now: datetime,
        previous_session_id: str | None = None,
    ) -> Seat | None:
        seat = await self._seats.claim_seat(schedule_id, seat_id, session_id, held_until, now, previous_session_id)
        if seat is not None:
            self._publish(schedule_id, seat)
        return seat

    async def _settle(self, schedule_id: int, seat_id: str, session_id: str, status: SeatStatus) -> Seat | None:
        # None: the seat was reclaimed by someone else and is left alone
        seat = await self._seats.settle_hold(schedule_id, seat_id, session_id, status)
        if seat is not None:
            self._publish(schedule_id, seat)
        return seat

    async def _set_status(
        self,
        schedule_id: int,
        seat_id: str,
        status: SeatStatus,
        held_by: str | None = None,
        held_until: datetime | None = None,
    ) -> None:
        seat = await self._seats.set_seat_status(schedule_id, seat_id, status, held_by=held_by, held_until=held_until)
        self._publish(schedule_id, seat)

    def _publish(self, schedule_id: int, seat: Seat) -> None:
        self._events.publish(
            SeatStatusChanged(
                schedule_id=schedule_id,
                seat_id=seat.seat_id,
                status=seat.status,
                held_by=seat.held_by,
                price=seat.price,
            )
        )
