"""
Rate Limiting Module

Per-user limits on the mutating recruitment endpoints (apply, accept,
reject, submit documents). Uses a Redis sorted-set sliding window when the
shared Redis client is connected and an in-process window otherwise.
"""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, status

from ta_portal.core.auth import CurrentUser, get_current_user
from ta_portal.core.redis import get_redis_client

logger = logging.getLogger(__name__)

# Fallback window per key: list of request timestamps
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """HTTP 429 with a Retry-After header."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(client, key: str, limit: int, window_seconds: int) -> bool:
    """Sliding window over a sorted set; the pipeline runs as one MULTI/EXEC."""
    now = time.time()

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)
    results = await pipe.execute()

    return results[1] < limit


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    """In-process window. Not shared between workers."""
    now = time.time()
    window = [ts for ts in _memory_store.get(key, []) if ts > now - window_seconds]

    if len(window) >= limit:
        _memory_store[key] = window
        return False

    window.append(now)
    _memory_store[key] = window
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check whether one more request under ``key`` fits the window.

    Returns:
        True if the request is allowed
    """
    client = get_redis_client()

    if client is not None:
        try:
            return await _check_rate_limit_redis(client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


def user_rate_limit(
    action: str,
    limit: int = 10,
    window_seconds: int = 60,
) -> Callable[..., Awaitable[CurrentUser]]:
    """
    Dependency limiting ``action`` per authenticated user.

    Usage:
        @router.post("/apply", dependencies=[Depends(user_rate_limit("apply", 20, 60))])

    Raises:
        RateLimitExceeded: HTTP 429 when the window is full
    """

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        key = f"rate_limit:{action}:{user.id}"
        if not await check_rate_limit(key, limit, window_seconds):
            logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
            raise RateLimitExceeded(limit, window_seconds)
        return user

    return dependency


__all__ = [
    "RateLimitExceeded",
    "check_rate_limit",
    "user_rate_limit",
]
