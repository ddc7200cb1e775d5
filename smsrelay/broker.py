"""
Redis connection shared by the publisher and the viewer subscriptions.

Redis pub/sub is fire-and-forget: a message published while no viewer is
subscribed is lost. Viewers only ever see events that arrive while they
are connected.
"""

import logging
from typing import Optional

import redis.asyncio as aioredis

from smsrelay.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


def init_redis() -> aioredis.Redis:
    """
    Create the Redis connection pool from BROKER_URL.
    Connections are opened lazily, so a broker outage surfaces per request.
    """
    global _redis
    _redis = aioredis.from_url(
        settings.BROKER_URL,
        encoding="utf-8",
        decode_responses=True,
    )
    logger.info("Broker client initialized")
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
        logger.info("Broker client closed")


def get_redis() -> aioredis.Redis:
    """
    Dependency returning the Redis connection (must be initialized first).
    """
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
