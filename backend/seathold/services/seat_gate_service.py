"""
Redis seat gate for multi-process deployments.
Implements SeatGate interface using per-seat keys claimed by a Lua script.

Circuit Breaker Pattern:
  On Redis failure, the gate "fails open" (admits the request).
  This prevents Redis outages from blocking all reservations.
  The seat store remains authoritative - Redis is advisory only.

  Tradeoff: During a Redis outage, exclusion across processes falls back to
  the store's own check. This is acceptable because:
  - Temporary degradation better than total outage
  - Each process still serializes its own reservations per schedule
  - Redis failures should be rare and monitored
"""

import os

import redis.asyncio as redis

from seathold.core.logging import get_logger
from seathold.core.metrics import redis_circuit_breaker_open, redis_connection_errors
from seathold.services.interfaces.seat_gate import SeatGate

logger = get_logger(__name__)

# Load Lua scripts
SCRIPT_DIR = os.path.join(os.path.dirname(__file__), '../infrastructure')
with open(os.path.join(SCRIPT_DIR, 'seat_hold_acquire.lua'), 'r') as f:
    ACQUIRE_SCRIPT = f.read()
with open(os.path.join(SCRIPT_DIR, 'seat_hold_release.lua'), 'r') as f:
    RELEASE_SCRIPT = f.read()


def hold_key(schedule_id: int, seat_id: str) -> str:
    # Hash tag keeps one schedule's seats in the same cluster slot
    return f"seat_hold:{{{schedule_id}}}:{seat_id}"


class RedisSeatGate(SeatGate):
    """
    Redis-based seat gate.

    Strategy: Claim every requested seat key atomically (SET ... PX ttl) or
    none of them. Keys expire on their own with the hold, so a crashed
    process cannot leak a claim past the hold duration.

    Use when:
    - Several API processes serve the same schedules
    - Flash sales where most requests contend for the same seats
    """

    def __init__(self, client: redis.Redis):
        self.redis = client
        self.acquire_script = client.register_script(ACQUIRE_SCRIPT)
        self.release_script = client.register_script(RELEASE_SCRIPT)

    async def acquire(
        self,
        schedule_id: int,
        seat_ids: list[str],
        session_id: str,
        ttl_seconds: int,
        previous_session_id: str | None = None,
    ) -> list[str]:
        keys = [hold_key(schedule_id, seat_id) for seat_id in seat_ids]
        try:
            positions = await self.acquire_script(
                keys=keys,
                args=[session_id, previous_session_id or "", ttl_seconds * 1000],
            )
            redis_circuit_breaker_open.set(0)
        except Exception as e:
            # Circuit breaker: On Redis failure, fail open (admit)
            redis_connection_errors.inc()
            redis_circuit_breaker_open.set(1)
            logger.warning("seat_gate_unavailable", schedule_id=schedule_id, error=str(e))
            return []
        return [seat_ids[int(position) - 1] for position in positions]

    async def release(self, schedule_id: int, seat_ids: list[str], session_id: str):
        if not seat_ids:
            return
        keys = [hold_key(schedule_id, seat_id) for seat_id in seat_ids]
        try:
            await self.release_script(keys=keys, args=[session_id])
        except Exception as e:
            # Best effort: keys lapse with the hold TTL anyway
            redis_connection_errors.inc()
            logger.warning("seat_gate_release_failed", schedule_id=schedule_id, error=str(e))
