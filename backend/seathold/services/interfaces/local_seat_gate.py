"""
Local seat gate - no pre-check.
Relies entirely on the reservation manager's per-schedule lock.
"""

from seathold.services.interfaces.seat_gate import SeatGate


class LocalSeatGate(SeatGate):
    """
    No cross-process gate - always admit.
    The check-and-set under the schedule lock decides conflicts.

    Use when:
    - A single API process owns the seat map
    - Tests and local development
    """

    async def acquire(
        self,
        schedule_id: int,
        seat_ids: list[str],
        session_id: str,
        ttl_seconds: int,
        previous_session_id: str | None = None,
    ) -> list[str]:
        """Always admit - let the store check decide."""
        return []

    async def release(self, schedule_id: int, seat_ids: list[str], session_id: str):
        """No-op - nothing to release."""
        pass
