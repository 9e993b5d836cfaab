"""
Redis-backed read-through cache for branch lists and file trees.

Entries are JSON ``{"data": ..., "stored_at": <epoch seconds>}`` kept for the
retention window. An entry is fresh for its tier TTL; after that it is only
served when GitHub is unreachable or rate limited, flagged as stale.

Usage:
    cache = RepositoryCache(redis_client, settings)
    result = await cache.get_branches("octocat", "Hello-World",
                                      lambda: client.get_repository_branches("octocat", "Hello-World"))
    result.data, result.cached, result.stale
"""

import json
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

import redis
from pydantic import BaseModel

from thinktest.core.config import Settings
from thinktest.exceptions import GitHubRateLimitError, TransportError
from thinktest.schemas.github import CachedResult

logger = logging.getLogger(__name__)

KEY_PREFIX = "github:cache:"

Fetcher = Callable[[], Awaitable[Any]]


def _to_jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump()
    if isinstance(data, (list, tuple)):
        return [_to_jsonable(item) for item in data]
    return data


class RepositoryCache:
    """Branch and tree cache with stale fallback."""

    def __init__(self, redis_client: redis.Redis, settings: Settings, clock: Callable[[], float] = time.time):
        self.redis = redis_client
        self.branches_ttl = settings.cache_branches_minutes * 60
        self.tree_ttl = settings.cache_tree_minutes * 60
        self.retention = settings.cache_retention_hours * 3600
        self._clock = clock

    # =========================================================================
    # Keys
    # =========================================================================

    @staticmethod
    def branches_key(owner: str, repo: str) -> str:
        return f"{KEY_PREFIX}branches:{owner}/{repo}".lower()

    @staticmethod
    def tree_key(owner: str, repo: str, branch: str) -> str:
        return f"{KEY_PREFIX}tree:{owner}/{repo}".lower() + f"@{branch}"

    # =========================================================================
    # Read-through
    # =========================================================================

    async def get_branches(self, owner: str, repo: str, fetch: Fetcher) -> CachedResult:
        return await self._read_through(self.branches_key(owner, repo), self.branches_ttl, fetch)

    async def get_tree(self, owner: str, repo: str, branch: str, fetch: Fetcher) -> CachedResult:
        return await self._read_through(self.tree_key(owner, repo, branch), self.tree_ttl, fetch)

    async def _read_through(self, key: str, ttl: int, fetch: Fetcher) -> CachedResult:
        entry = self._load(key)
        now = self._clock()

        if entry is not None:
            age = max(0, int(now - entry["stored_at"]))
            if age < ttl:
                logger.debug(f"Cache hit for {key} (age {age}s)")
                return CachedResult(data=entry["data"], cached=True, stale=False, age_seconds=age)

        try:
            data = _to_jsonable(await fetch())
        except (TransportError, GitHubRateLimitError) as e:
            if entry is None:
                raise
            age = max(0, int(now - entry["stored_at"]))
            logger.warning(f"Serving stale cache for {key} (age {age}s) after {e.error_code}")
            return CachedResult(
                data=entry["data"],
                cached=True,
                stale=True,
                age_seconds=age,
                warning=f"{e.message} (showing cached data)",
            )

        self._store(key, data)
        return CachedResult(data=data, cached=False, stale=False, age_seconds=0)

    # =========================================================================
    # Storage
    # =========================================================================

    def _load(self, key: str) -> Optional[dict]:
        raw = self.redis.get(key)
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
            float(entry["stored_at"])
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Dropping unreadable cache entry {key}")
            self.redis.delete(key)
            return None
        return entry

    def _store(self, key: str, data: Any) -> None:
        payload = json.dumps({"data": data, "stored_at": self._clock()})
        self.redis.set(key, payload, ex=self.retention)

    def clear(self, owner: str, repo: str) -> int:
        """Drop every tier for a repository. Returns number of keys removed."""
        keys: List[str] = [self.branches_key(owner, repo)]
        pattern = f"{KEY_PREFIX}tree:{owner}/{repo}".lower() + "@*"
        keys.extend(self.redis.scan_iter(match=pattern))
        removed = self.redis.delete(*keys)
        logger.info(f"Cleared {removed} cache entries for {owner}/{repo}")
        return removed

    def prune(self) -> int:
        """Delete entries older than the retention window."""
        cutoff = self._clock() - self.retention
        removed = 0
        for key in self.redis.scan_iter(match=f"{KEY_PREFIX}*"):
            entry = self._load(key)
            if entry is None:
                continue
            if entry["stored_at"] < cutoff:
                removed += self.redis.delete(key)
        if removed:
            logger.info(f"Pruned {removed} expired GitHub cache entries")
        return removed
