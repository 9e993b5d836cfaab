"""
Redis-based per-user request rate limiter for GitHub endpoints.

Two fixed windows per user (minute and hour). A single Lua script checks
both counters and only then increments both, so concurrent requests from the
same user (two browser tabs, several workers) can never overshoot a budget.
"""

import logging
import math

import redis

from thinktest.schemas.github import RateLimitResult

logger = logging.getLogger(__name__)


class GitHubRateLimiter:
    """Distributed per-user rate limiter using Redis."""

    KEY_PREFIX = "ratelimit:github:"

    # Lua script: atomically check both windows, then consume from both
    # Returns: {1, 0, minute_count, hour_count} when allowed
    #          {0, window (1=minute, 2=hour), count, pttl_ms} when exhausted
    LUA_SCRIPT = """
    local minute_key = KEYS[1]
    local hour_key = KEYS[2]
    local minute_limit = tonumber(ARGV[1])
    local minute_ms = tonumber(ARGV[2])
    local hour_limit = tonumber(ARGV[3])
    local hour_ms = tonumber(ARGV[4])

    local function exhausted(key, limit, window_ms)
        local count = tonumber(redis.call('GET', key) or '0')
        if count < limit then
            return nil
        end
        local ttl = redis.call('PTTL', key)
        if ttl < 0 then
            -- Counter lost its expiry, restart the window
            redis.call('PEXPIRE', key, window_ms)
            ttl = window_ms
        end
        return {count, ttl}
    end

    -- When both are exhausted, report the one that stays closed longer
    local minute_hit = exhausted(minute_key, minute_limit, minute_ms)
    local hour_hit = exhausted(hour_key, hour_limit, hour_ms)
    if hour_hit and (not minute_hit or hour_hit[2] >= minute_hit[2]) then
        return {0, 2, hour_hit[1], hour_hit[2]}
    end
    if minute_hit then
        return {0, 1, minute_hit[1], minute_hit[2]}
    end

    local minute_count = redis.call('INCR', minute_key)
    if minute_count == 1 then
        redis.call('PEXPIRE', minute_key, minute_ms)
    end

    local hour_count = redis.call('INCR', hour_key)
    if hour_count == 1 then
        redis.call('PEXPIRE', hour_key, hour_ms)
    end

    return {1, 0, minute_count, hour_count}
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        per_minute: int = 30,
        per_hour: int = 100,
        minute_window_seconds: int = 60,
        hour_window_seconds: int = 3600,
    ):
        self.redis = redis_client
        self.per_minute = per_minute
        self.per_hour = per_hour
        self.minute_window_ms = minute_window_seconds * 1000
        self.hour_window_ms = hour_window_seconds * 1000

        # Register Lua script
        self._check_and_consume = self.redis.register_script(self.LUA_SCRIPT)

    def _key(self, window: str, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{window}:{user_id}"

    def hit(self, user_id: str) -> RateLimitResult:
        """
        Consume one request from both windows if neither is exhausted.

        Returns:
            RateLimitResult; ``allowed=False`` carries the window that was hit
            and ``retry_after`` seconds (>= 1) until it resets
        """
        allowed, window_id, first, second = [
            int(v) for v in self._check_and_consume(
                keys=[self._key("minute", user_id), self._key("hour", user_id)],
                args=[self.per_minute, self.minute_window_ms, self.per_hour, self.hour_window_ms],
            )
        ]

        if allowed:
            return RateLimitResult(
                allowed=True,
                limit=self.per_minute,
                remaining=max(0, min(self.per_minute - first, self.per_hour - second)),
            )

        window = "minute" if window_id == 1 else "hour"
        retry_after = max(1, math.ceil(second / 1000))
        logger.debug(f"Rate limit hit on {window} window", extra={"user_id": user_id})
        return RateLimitResult(
            allowed=False,
            window=window,
            limit=self.per_minute if window == "minute" else self.per_hour,
            remaining=0,
            retry_after=retry_after,
        )

    def reset(self, user_id: str) -> None:
        """Clear both windows for a user."""
        self.redis.delete(self._key("minute", user_id), self._key("hour", user_id))
