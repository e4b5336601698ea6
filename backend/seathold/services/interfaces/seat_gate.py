"""
Seat gate strategy interface.
Allows swapping between in-process and cross-process seat exclusion.
"""

from abc import ABC, abstractmethod


class SeatGate(ABC):
    """
    Interface for seat gate strategies.

    The gate is consulted before the authoritative seat store is touched.
    It only has to reject obviously contended seats early; the store check
    under the schedule lock is still the final word.

    Implementations:
    - LocalSeatGate: No pre-check, single process relies on the schedule lock
    - RedisSeatGate: Per-seat keys with hold TTL shared by all processes
    """

    @abstractmethod
    async def acquire(
        self,
        schedule_id: int,
        seat_ids: list[str],
        session_id: str,
        ttl_seconds: int,
        previous_session_id: str | None = None,
    ) -> list[str]:
        """
        Claim seats for a session, all or nothing.

        Args:
            schedule_id: Schedule the seats belong to
            seat_ids: Seats requested
            session_id: New owning session
            ttl_seconds: Hold duration
            previous_session_id: Session being replaced; its claims do not conflict

        Returns:
            Seat ids held by someone else (empty list when admitted)
        """
        pass

    @abstractmethod
    async def release(self, schedule_id: int, seat_ids: list[str], session_id: str):
        """
        Drop the session's claims on seats (release, expiry, confirmation).

        Args:
            schedule_id: Schedule the seats belong to
            seat_ids: Seats to release
            session_id: Session whose claims are dropped
        """
        pass
