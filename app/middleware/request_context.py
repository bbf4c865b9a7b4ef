"""Request context middleware: request ids and the per-request summary line.

Concurrent requests share one thread under asyncio, so the id lives in a
ContextVar (per task) rather than thread-local storage.  A log record
factory copies it onto every LogRecord, whichever logger created it, so a
quiz submission's "Answer recorded" and its later "Rejected ...
DuplicateAnswer" lines can be tied back to the same request.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_base_record_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    record.request_id = request_id_var.get()
    return record


_record_factory.installed = True  # type: ignore[attr-defined]

# Installed once per process; re-imports must not wrap the factory twice.
if not getattr(_base_record_factory, "installed", False):
    logging.setLogRecordFactory(_record_factory)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign (or echo) X-Request-ID, time the request, log one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(req_id)

        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            logger.info(
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            response.headers[REQUEST_ID_HEADER] = req_id
            return response
        finally:
            request_id_var.reset(token)
