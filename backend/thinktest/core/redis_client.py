"""Shared Redis connection for the rate limiter and the result cache."""

from typing import Optional

import redis

from thinktest.core.config import get_settings

_redis: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Get the global Redis client (responses decoded to str)."""
    global _redis
    if _redis is None:
        _redis = redis.from_url(get_settings().redis_url, decode_responses=True)
    return _redis
