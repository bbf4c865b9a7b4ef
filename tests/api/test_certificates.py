"""Tests for certificate issuance, public verification, and revocation."""

from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.services.registry import SAMPLE_COURSE_ID
from tests.conftest import auth

CERTS = "/v1/certificates"


@pytest.fixture
def completed(client: TestClient, token: str) -> dict[str, str]:
    headers = auth(token)
    client.post(f"/v1/courses/{SAMPLE_COURSE_ID}/enroll", headers=headers)
    for topic in ("m1-t1", "m1-t2", "m2-t1", "m2-t2"):
        client.post(
            f"/v1/progress/courses/{SAMPLE_COURSE_ID}/topics/{topic}/complete",
            headers=headers,
        )
    return headers


def _issue(client: TestClient, headers: dict[str, str]) -> dict:
    resp = client.post(f"{CERTS}/courses/{SAMPLE_COURSE_ID}", headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---- issuance ----


def test_request_before_completion_is_rejected(client: TestClient, token: str) -> None:
    headers = auth(token)
    client.post(f"/v1/courses/{SAMPLE_COURSE_ID}/enroll", headers=headers)
    client.post(
        f"/v1/progress/courses/{SAMPLE_COURSE_ID}/topics/m1-t1/complete", headers=headers
    )
    resp = client.post(f"{CERTS}/courses/{SAMPLE_COURSE_ID}", headers=headers)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "NotCompleted"
    assert body["current_progress"] == 25


def test_issue_uses_token_display_name(client: TestClient, completed) -> None:
    cert = _issue(client, completed)
    assert cert["holder_name"] == "Test User"
    assert cert["course_title"] == "Introduction to Python"
    assert cert["code"].startswith("CERT-")
    assert cert["metadata"]["total_modules"] == 2
    assert cert["metadata"]["completed_modules"] == 2
    assert cert["is_revoked"] is False


def test_second_request_conflicts(client: TestClient, completed) -> None:
    cert = _issue(client, completed)
    resp = client.post(f"{CERTS}/courses/{SAMPLE_COURSE_ID}", headers=completed)
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "AlreadyIssued"
    assert body["code"] == cert["code"]


def test_list_mine(client: TestClient, completed) -> None:
    cert = _issue(client, completed)
    resp = client.get(f"{CERTS}/mine", headers=completed)
    assert [c["id"] for c in resp.json()] == [cert["id"]]


# ---- verification (public) ----


def test_verify_is_public(client: TestClient, completed) -> None:
    cert = _issue(client, completed)
    resp = client.get(f"{CERTS}/verify/{cert['code']}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["valid"] is True
    assert body["certificate"]["holder_name"] == "Test User"
    # Only what is printed on the certificate
    assert "learner_id" not in body["certificate"]
    assert "metadata" not in body["certificate"]


def test_verify_unknown_code(client: TestClient) -> None:
    resp = client.get(f"{CERTS}/verify/CERT-NOPE-ZZZZZZ")
    assert resp.status_code == 404


# ---- viewing ----


def test_owner_and_admin_can_view(client: TestClient, completed, admin_token: str) -> None:
    cert = _issue(client, completed)
    assert client.get(f"{CERTS}/{cert['id']}", headers=completed).status_code == 200
    assert client.get(f"{CERTS}/{cert['id']}", headers=auth(admin_token)).status_code == 200


def test_stranger_cannot_view(client: TestClient, completed, instructor_token: str) -> None:
    cert = _issue(client, completed)
    resp = client.get(f"{CERTS}/{cert['id']}", headers=auth(instructor_token))
    assert resp.status_code == 403


def test_unknown_certificate_is_404(client: TestClient, token: str) -> None:
    resp = client.get(f"{CERTS}/{uuid4()}", headers=auth(token))
    assert resp.status_code == 404


# ---- administration ----


def test_admin_lists_with_filters(client: TestClient, completed, admin_token: str) -> None:
    cert = _issue(client, completed)
    resp = client.get(
        CERTS, params={"learner_id": "test-user", "is_revoked": "false"}, headers=auth(admin_token)
    )
    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()] == [cert["id"]]

    revoked = client.get(CERTS, params={"is_revoked": "true"}, headers=auth(admin_token))
    assert revoked.json() == []


def test_listing_requires_admin(client: TestClient, token: str) -> None:
    assert client.get(CERTS, headers=auth(token)).status_code == 403


def test_revoke_flow(client: TestClient, completed, admin_token: str) -> None:
    cert = _issue(client, completed)
    url = f"{CERTS}/{cert['id']}/revoke"

    resp = client.post(url, json={"reason": "Academic misconduct"}, headers=auth(admin_token))
    assert resp.status_code == 200
    assert resp.json()["is_revoked"] is True
    assert resp.json()["revoked_reason"] == "Academic misconduct"

    again = client.post(url, json={"reason": "twice"}, headers=auth(admin_token))
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyRevoked"

    check = client.get(f"{CERTS}/verify/{cert['code']}").json()
    assert check["valid"] is False
    assert check["is_revoked"] is True
    assert check["revoked_reason"] == "Academic misconduct"

    # A revoked certificate no longer blocks a fresh one
    reissued = _issue(client, completed)
    assert reissued["id"] != cert["id"]


def test_revoke_requires_admin(client: TestClient, completed, instructor_token: str) -> None:
    cert = _issue(client, completed)
    resp = client.post(
        f"{CERTS}/{cert['id']}/revoke", json={"reason": "x"}, headers=auth(instructor_token)
    )
    assert resp.status_code == 403


def test_revoke_requires_reason(client: TestClient, completed, admin_token: str) -> None:
    cert = _issue(client, completed)
    resp = client.post(
        f"{CERTS}/{cert['id']}/revoke", json={"reason": ""}, headers=auth(admin_token)
    )
    assert resp.status_code == 422
