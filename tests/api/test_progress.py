"""Tests for topic progress and course progress endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.services.registry import SAMPLE_COURSE_ID
from tests.conftest import auth

PROGRESS = f"/v1/progress/courses/{SAMPLE_COURSE_ID}"


@pytest.fixture
def enrolled(client: TestClient, token: str) -> dict[str, str]:
    headers = auth(token)
    assert client.post(f"/v1/courses/{SAMPLE_COURSE_ID}/enroll", headers=headers).status_code == 201
    return headers


# ---- 401 / 403 ----


def test_progress_rejects_missing_token(client: TestClient) -> None:
    resp = client.get(PROGRESS)
    assert resp.status_code == 401


def test_progress_requires_enrollment(client: TestClient, token: str) -> None:
    resp = client.post(f"{PROGRESS}/topics/m1-t1/complete", headers=auth(token))
    assert resp.status_code == 403


# ---- completion ----


def test_complete_topics_to_course_completion(client: TestClient, enrolled) -> None:
    seen = []
    for topic in ("m1-t1", "m1-t2", "m2-t1", "m2-t2"):
        resp = client.post(f"{PROGRESS}/topics/{topic}/complete", headers=enrolled)
        assert resp.status_code == 200
        seen.append((resp.json()["progress"], resp.json()["status"]))

    assert seen == [(25, "active"), (50, "active"), (75, "active"), (100, "completed")]


def test_complete_is_idempotent(client: TestClient, enrolled) -> None:
    client.post(f"{PROGRESS}/topics/m1-t1/complete", headers=enrolled)
    resp = client.post(f"{PROGRESS}/topics/m1-t1/complete", headers=enrolled)
    assert resp.json()["progress"] == 25
    assert resp.json()["completed_topics"] == ["m1-t1"]


def test_unknown_topic_is_404(client: TestClient, enrolled) -> None:
    resp = client.post(f"{PROGRESS}/topics/m9-t9/complete", headers=enrolled)
    assert resp.status_code == 404
    assert resp.json()["resource"] == "topic"


# ---- visits ----


def test_visit_accumulates_time(client: TestClient, enrolled) -> None:
    client.post(f"{PROGRESS}/topics/m1-t1/visit", json={"time_spent": 40}, headers=enrolled)
    resp = client.post(
        f"{PROGRESS}/topics/m1-t1/visit",
        json={"time_spent": 20, "notes": "re-read"},
        headers=enrolled,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "in_progress"
    assert body["time_spent"] == 60
    assert body["notes"] == "re-read"


def test_negative_time_is_rejected(client: TestClient, enrolled) -> None:
    resp = client.post(
        f"{PROGRESS}/topics/m1-t1/visit", json={"time_spent": -5}, headers=enrolled
    )
    assert resp.status_code == 422


# ---- reads ----


def test_course_progress_overview(client: TestClient, enrolled) -> None:
    client.post(f"{PROGRESS}/topics/m1-t1/complete", headers=enrolled)
    client.post(f"{PROGRESS}/topics/m2-t1/visit", json={"time_spent": 30}, headers=enrolled)

    resp = client.get(PROGRESS, headers=enrolled)
    assert resp.status_code == 200
    body = resp.json()
    assert body["progress"] == 25
    assert body["completed_topics"] == 1
    assert body["total_topics"] == 4
    assert body["total_time_spent"] == 30
    assert body["last_accessed_topic"] == "m2-t1"
    assert {t["topic_id"] for t in body["topics"]} == {"m1-t1", "m2-t1"}


def test_module_progress(client: TestClient, enrolled) -> None:
    client.post(f"{PROGRESS}/topics/m2-t2/complete", headers=enrolled)
    resp = client.get(f"{PROGRESS}/modules/m2", headers=enrolled)
    assert resp.status_code == 200
    body = resp.json()
    assert body["progress"] == 50
    assert [t["status"] for t in body["topics"]] == ["not_started", "completed"]


def test_learner_stats(client: TestClient, enrolled) -> None:
    client.post(f"{PROGRESS}/topics/m1-t1/complete", headers=enrolled)
    resp = client.get("/v1/progress/stats", headers=enrolled)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_courses"] == 1
    assert body["active_courses"] == 1
    assert body["topics_completed"] == 1
    assert body["average_progress"] == 25
