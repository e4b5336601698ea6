"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .payment_gateway import HttpPaymentGateway
from .redis_client import RedisClient, get_redis

__all__ = ['get_redis', 'RedisClient', 'HttpPaymentGateway']
