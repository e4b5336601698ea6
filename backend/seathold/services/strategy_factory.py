"""
Seat gate strategy factory.
Configures which seat gate strategy to use.
"""

from seathold.core.config import Settings, get_settings
from seathold.infrastructure.redis_client import get_redis
from seathold.services.interfaces.local_seat_gate import LocalSeatGate
from seathold.services.interfaces.seat_gate import SeatGate
from seathold.services.seat_gate_service import RedisSeatGate


def get_seat_gate_strategy(settings: Settings | None = None) -> SeatGate:
    """
    Get configured seat gate strategy.

    Strategy selection based on environment:
    - Development / single process: LocalSeatGate (simple)
    - Production with several workers: RedisSeatGate

    Selected via the SEAT_GATE_STRATEGY env var; Redis must also be enabled.
    """
    settings = settings or get_settings()

    if settings.SEAT_GATE_STRATEGY == 'redis' and settings.REDIS_ENABLED:
        return RedisSeatGate(get_redis())
    else:
        return LocalSeatGate()
