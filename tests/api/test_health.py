from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # In tests, neither Redis nor PostgreSQL is configured
    assert data["checks"] == {"redis": "not_configured", "database": "not_configured"}


def test_health_needs_no_token(client: TestClient) -> None:
    assert client.get("/health", headers={"Authorization": "Bearer junk"}).status_code == 200


def test_ready_returns_200_without_database(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200
