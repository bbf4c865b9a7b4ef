"""Prometheus metrics middleware: count, time, and gauge every request.

The endpoint label is the matched route template
(``/v1/quizzes/attempts/{attempt_id}``), never the raw path, so ids in
URLs cannot blow up label cardinality.  Requests that match no route are
labelled "unmatched".
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION

UNMATCHED_ENDPOINT = "unmatched"


def endpoint_label(request: Request) -> str:
    # The router stores the matched route on the shared ASGI scope.
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ENDPOINT


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect Prometheus metrics for every HTTP request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Don't let Prometheus scrapes inflate the request count
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start = time.monotonic()
        status_code = "500"

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            duration = time.monotonic() - start
            ACTIVE_REQUESTS.dec()
            endpoint = endpoint_label(request)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
            ).inc()
            REQUEST_DURATION.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(duration)

        return response
