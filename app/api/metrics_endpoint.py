"""Prometheus scrape endpoint (text exposition format, not JSON).

  quiz_attempts_total{outcome="passed"} 41.0
  domain_errors_total{kind="AttemptAlreadyActive"} 3.0

Keep /metrics off the public ingress in production; it exposes request
rates and error patterns.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
