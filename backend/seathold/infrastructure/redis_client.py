"""
Redis client for the cross-process seat gate.
Separated from business logic for clean architecture.
"""

from typing import Optional

import redis.asyncio as redis

from seathold.core.config import get_settings
from seathold.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Singleton async Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        """Get or create Redis client instance. Connects lazily on first command."""
        if cls._instance is None:
            settings = get_settings()
            cls._instance = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return cls._instance

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._instance:
            await cls._instance.aclose()
            cls._instance = None


def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    return RedisClient.get_client()


async def redis_status() -> dict:
    """Connectivity summary for the health endpoint."""
    settings = get_settings()
    if not settings.REDIS_ENABLED or settings.SEAT_GATE_STRATEGY != "redis":
        return {"status": "disabled"}
    try:
        await get_redis().ping()
        return {"status": "connected"}
    except Exception as e:
        logger.error("redis_ping_failed", error=str(e))
        return {"status": "error", "error": str(e)}
