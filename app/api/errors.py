"""Domain error -> HTTP response mapping.

Services raise AssessmentError subclasses and never think about status
codes; this module is the only place that does.  The response body always
carries the machine-readable kind plus whatever context the error holds:

    409 {"error": "AttemptAlreadyActive", "detail": "...",
         "active_attempt_id": "...", "attempt_no": 2}
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.core.errors import (
    AlreadyEnrolled,
    AlreadyIssued,
    AlreadyRevoked,
    AssessmentError,
    AttemptAlreadyActive,
    AttemptConflict,
    AttemptLimitExceeded,
    AttemptNotActive,
    DeadlinePassed,
    DuplicateAnswer,
    Forbidden,
    GradingConflict,
    NotCompleted,
    NotFound,
    ValidationError,
)
from app.core.metrics import DOMAIN_ERRORS

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[AssessmentError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    Forbidden: status.HTTP_403_FORBIDDEN,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AttemptLimitExceeded: status.HTTP_400_BAD_REQUEST,
    DeadlinePassed: status.HTTP_400_BAD_REQUEST,
    NotCompleted: status.HTTP_400_BAD_REQUEST,
    AttemptAlreadyActive: status.HTTP_409_CONFLICT,
    AttemptConflict: status.HTTP_409_CONFLICT,
    AttemptNotActive: status.HTTP_409_CONFLICT,
    DuplicateAnswer: status.HTTP_409_CONFLICT,
    AlreadyIssued: status.HTTP_409_CONFLICT,
    AlreadyRevoked: status.HTTP_409_CONFLICT,
    AlreadyEnrolled: status.HTTP_409_CONFLICT,
    GradingConflict: status.HTTP_409_CONFLICT,
}


def status_for(exc: AssessmentError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return status.HTTP_400_BAD_REQUEST


async def assessment_error_handler(
    request: Request, exc: AssessmentError
) -> JSONResponse:
    status_code = status_for(exc)
    DOMAIN_ERRORS.labels(kind=exc.kind).inc()
    logger.warning(
        "Rejected %s %s: %s (%s) %s",
        request.method,
        request.url.path,
        exc.kind,
        exc.message,
        exc.context,
        extra={"error_kind": exc.kind},
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.kind, "detail": exc.message, **exc.context},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "InternalError", "detail": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AssessmentError, assessment_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
