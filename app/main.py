from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.assignments import router as assignments_router
from app.api.certificates import router as certificates_router
from app.api.courses import router as courses_router
from app.api.errors import register_exception_handlers
from app.api.health import router as health_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.progress import router as progress_router
from app.api.quizzes import router as quizzes_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import async_session_factory, lifespan_db
from app.db.redis import lifespan_redis
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware
from app.services import registry

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails.
    async with lifespan_db():
        async with lifespan_redis():
            if async_session_factory is None and not SETTINGS.is_prod:
                await registry.seed_sample_content()
            yield


app = FastAPI(
    title="assessment-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) -> Metrics -> CORS -> route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

register_exception_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(courses_router)
app.include_router(quizzes_router)
app.include_router(assignments_router)
app.include_router(progress_router)
app.include_router(certificates_router)

logger.info(
    "assessment-service started  env=%s log_level=%s port=%d docs=%s storage=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    "postgres" if async_session_factory is not None else "memory",
)
