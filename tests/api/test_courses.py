"""Tests for course listing, enrollment, and rating endpoints."""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from app.services.registry import SAMPLE_COURSE_ID
from tests.conftest import auth

COURSE = f"/v1/courses/{SAMPLE_COURSE_ID}"

# ---- 401: unauthenticated ----


def test_list_courses_rejects_missing_token(client: TestClient) -> None:
    resp = client.get("/v1/courses")
    assert resp.status_code == 401


def test_enroll_rejects_missing_token(client: TestClient) -> None:
    resp = client.post(f"{COURSE}/enroll")
    assert resp.status_code == 401


def test_garbage_token_rejected(client: TestClient) -> None:
    resp = client.get("/v1/courses", headers=auth("not-a-jwt"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


# ---- 200: list courses ----


def test_list_courses_returns_seeded_course(client: TestClient, token: str) -> None:
    resp = client.get("/v1/courses", headers=auth(token))
    assert resp.status_code == 200
    courses = resp.json()
    assert [c["slug"] for c in courses] == ["intro-to-python"]
    assert courses[0]["total_topics"] == 4
    assert [m["id"] for m in courses[0]["modules"]] == ["m1", "m2"]


# ---- 201 / 409: enrollment ----


def test_enroll_success(client: TestClient, token: str) -> None:
    resp = client.post(f"{COURSE}/enroll", headers=auth(token))
    assert resp.status_code == 201
    body = resp.json()
    assert body["course_id"] == str(SAMPLE_COURSE_ID)
    assert body["learner_id"] == "test-user"
    assert body["status"] == "active"
    assert body["progress"] == 0


def test_enroll_twice_conflicts(client: TestClient, token: str) -> None:
    client.post(f"{COURSE}/enroll", headers=auth(token))
    resp = client.post(f"{COURSE}/enroll", headers=auth(token))
    assert resp.status_code == 409
    assert resp.json()["error"] == "AlreadyEnrolled"


def test_enroll_unknown_course_is_404(client: TestClient, token: str) -> None:
    resp = client.post(f"/v1/courses/{uuid4()}/enroll", headers=auth(token))
    assert resp.status_code == 404
    body = resp.json()
    assert body["error"] == "NotFound"
    assert body["resource"] == "course"


def test_malformed_course_id_is_422(client: TestClient, token: str) -> None:
    resp = client.post("/v1/courses/not-a-uuid/enroll", headers=auth(token))
    assert resp.status_code == 422


# ---- enrollment lifecycle ----


def test_get_enrollment_requires_enrollment(client: TestClient, token: str) -> None:
    resp = client.get(f"{COURSE}/enrollment", headers=auth(token))
    assert resp.status_code == 404


def test_pause_and_resume(client: TestClient, token: str) -> None:
    client.post(f"{COURSE}/enroll", headers=auth(token))
    paused = client.patch(
        f"{COURSE}/enrollment", json={"status": "paused"}, headers=auth(token)
    )
    assert paused.status_code == 200
    assert paused.json()["status"] == "paused"

    resumed = client.patch(
        f"{COURSE}/enrollment", json={"status": "active"}, headers=auth(token)
    )
    assert resumed.json()["status"] == "active"


def test_completed_status_cannot_be_set_directly(client: TestClient, token: str) -> None:
    client.post(f"{COURSE}/enroll", headers=auth(token))
    resp = client.patch(
        f"{COURSE}/enrollment", json={"status": "completed"}, headers=auth(token)
    )
    assert resp.status_code == 422


def test_unenroll(client: TestClient, token: str) -> None:
    client.post(f"{COURSE}/enroll", headers=auth(token))
    resp = client.delete(f"{COURSE}/enrollment", headers=auth(token))
    assert resp.status_code == 204
    assert client.get(f"{COURSE}/enrollment", headers=auth(token)).status_code == 404


# ---- rating ----


def test_rating_updates_course_summary(client: TestClient, token: str) -> None:
    client.post(f"{COURSE}/enroll", headers=auth(token))
    resp = client.post(
        f"{COURSE}/rating", json={"score": 4, "review": "solid"}, headers=auth(token)
    )
    assert resp.status_code == 200
    assert resp.json()["rating"]["score"] == 4

    course = client.get("/v1/courses", headers=auth(token)).json()[0]
    assert course["rating_average"] == 4.0
    assert course["rating_count"] == 1


def test_rating_out_of_range(client: TestClient, token: str) -> None:
    client.post(f"{COURSE}/enroll", headers=auth(token))
    resp = client.post(f"{COURSE}/rating", json={"score": 9}, headers=auth(token))
    assert resp.status_code == 422
    assert resp.json()["error"] == "ValidationError"


def test_rating_requires_enrollment(client: TestClient, token: str) -> None:
    resp = client.post(f"{COURSE}/rating", json={"score": 5}, headers=auth(token))
    assert resp.status_code == 403
    assert resp.json()["error"] == "Forbidden"
