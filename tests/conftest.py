from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.clock import ManualClock  # noqa: E402
from app.main import app  # noqa: E402
from app.services import registry, token_service  # noqa: E402
from app.services.cache import cache_service  # noqa: E402
from app.services.task_queue import task_queue  # noqa: E402

START = 1_760_000_000


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture(autouse=True)
def services(clock: ManualClock) -> registry.Services:
    """Fresh in-memory repositories, the sample course, and a manual clock."""
    svc = registry.reset(clock=clock)
    asyncio.run(registry.seed_sample_content(svc))
    return svc


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
    name: str | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles, name=name)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token() -> str:
    """Token with default role (user)."""
    return mint_token(name="Test User")


@pytest.fixture
def instructor_token() -> str:
    return mint_token(username="test-instructor", roles=["instructor"])


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(username="test-admin", roles=["admin"])
