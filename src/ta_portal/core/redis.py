"""
Redis Configuration

Shared async Redis client used for rate limiting and the notification
outbox. Redis is optional outside production: callers check
``get_redis_client()`` for None and degrade.
"""

import logging

from redis.asyncio import Redis, from_url

from ta_portal.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect on application startup and verify with PING."""
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    return redis_client


def get_redis_client() -> Redis | None:
    """Return the connected client, or None when Redis was never initialised."""
    return redis_client


async def close_redis() -> None:
    """Close the shared connection pool."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
        logger.debug("Redis connection closed")
