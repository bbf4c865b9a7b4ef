"""Read-through cache service.

Flow:  caller -> cache -> miss -> repositories -> populate cache -> return
       caller -> cache -> hit  -> return (skip the repositories entirely)

Used for the course progress overview, which is read on every dashboard
load but only changes when the learner does something.

CACHE INVALIDATION
------------------
Two complementary strategies:

  1. TTL: every cached entry auto-expires after N seconds.  This is the
     safety net if some mutation path forgets to invalidate.

  2. Explicit invalidation: every progress mutation (topic visit, topic
     completion, passed assessment) deletes the learner's cached entry
     for that course immediately.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from app.core.metrics import CACHE_OPERATIONS
from app.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching a glob pattern (e.g. 'progress:learner-1:*')."""
        ...


class InMemoryCacheService:
    """In-memory cache for dev and tests; no TTL enforcement.

    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        value = self._store.get(key)
        CACHE_OPERATIONS.labels(operation="hit" if value is not None else "miss").inc()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        prefix = pattern.rstrip("*")
        for k in [k for k in self._store if k.startswith(prefix)]:
            del self._store[k]


class RedisCacheService:
    """Redis-backed cache, shared across all API instances."""

    # Key prefix keeps cache entries apart from the task queue lists
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(f"{self._PREFIX}{key}")
        CACHE_OPERATIONS.labels(operation="hit" if value is not None else "miss").inc()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def delete_pattern(self, pattern: str) -> None:
        # SCAN, not KEYS: KEYS blocks the server while it walks every key.
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor, match=f"{self._PREFIX}{pattern}", count=100
            )
            if keys:
                await self._redis.delete(*keys)
            if cursor == 0:
                break


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()


def progress_cache_key(learner_id: str, course_id: object) -> str:
    return f"progress:{learner_id}:{course_id}"
