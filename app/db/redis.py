"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured there is one shared
connection pool, otherwise ``redis_pool`` is None and the progress cache
and the task queues run in memory.

Redis holds only data that can be lost: cached progress overviews (with a
TTL) and queued notification and grading tasks.  Enrollments, attempts,
submissions and certificates stay in Postgres.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

# Consumers check for None and fall back to in-memory implementations.
if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Ping Redis on startup, close the pool on shutdown."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, cache and queues are in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        # Start anyway; /ready reports the degraded dependency.
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
