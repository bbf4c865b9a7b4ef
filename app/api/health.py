"""Health and readiness endpoints.

  /health (liveness): the process answers; the body reports each backing
      service so an operator can see a degraded dependency at a glance.
      Always 200, because restarting the container does not fix Redis.
  /ready (readiness): 503 when the database is configured but unreachable.
      Learner records live there, so an instance without it cannot serve.
      Redis is optional (in-memory fallbacks) and never blocks readiness.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status

from app.db.engine import engine, ping_database
from app.db.redis import redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _redis_status() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
        return "ok"
    except Exception:
        logger.warning("Redis health check failed", exc_info=True)
        return "degraded"


async def _database_status() -> str:
    if engine is None:
        return "not_configured"
    try:
        await ping_database()
        return "ok"
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        return "degraded"


@router.get("/health")
async def health() -> dict:
    checks = {
        "redis": await _redis_status(),
        "database": await _database_status(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _database_status() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
