"""Payment webhook route: signature gate, status codes, idempotency."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any

import pytest
from fastapi.testclient import TestClient

from lms.services.entitlements import EntitlementResolver
from tests.conftest import WEBHOOK_SECRET, auth, checkout_event, seed_course


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None):
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode(),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def _post(client: TestClient, event: dict[str, Any], **sign_kwargs):
    payload = json.dumps(event)
    return client.post(
        "/webhooks/stripe",
        content=payload,
        headers={
            "Stripe-Signature": sign(payload, **sign_kwargs),
            "Content-Type": "application/json",
        },
    )


def test_purchase_webhook_grants_access(client: TestClient, token: str) -> None:
    course = seed_course()
    resp = _post(client, checkout_event(course_id=course.course_id))
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "duplicate": False}

    check = client.post(
        "/me/entitlements/check",
        json={"courseId": str(course.course_id)},
        headers=auth(token),
    )
    assert check.json() == {"ok": True}


def test_redelivery_reports_duplicate(client: TestClient) -> None:
    course = seed_course()
    event = checkout_event(course_id=course.course_id)
    assert _post(client, event).json()["duplicate"] is False
    assert _post(client, event).json() == {"received": True, "duplicate": True}


def test_unhandled_event_type_is_acknowledged(client: TestClient) -> None:
    resp = _post(client, {"id": "evt_other", "type": "invoice.paid", "data": {}})
    assert resp.status_code == 200


def test_missing_signature_is_400(client: TestClient) -> None:
    resp = client.post("/webhooks/stripe", content=json.dumps(checkout_event()))
    assert resp.status_code == 400
    assert resp.json()["error"] == "missing_signature"


def test_wrong_secret_is_400(client: TestClient) -> None:
    resp = _post(client, checkout_event(), secret="whsec_someone_else")
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_signature"


def test_stale_signature_is_400(client: TestClient) -> None:
    resp = _post(client, checkout_event(), timestamp=int(time.time()) - 3600)
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_signature"


def test_tampered_body_is_400(client: TestClient) -> None:
    payload = json.dumps(checkout_event())
    resp = client.post(
        "/webhooks/stripe",
        content=payload.replace("pi_test_1", "pi_forged"),
        headers={"Stripe-Signature": sign(payload)},
    )
    assert resp.status_code == 400


def test_non_object_body_is_400(client: TestClient) -> None:
    payload = json.dumps(["not", "an", "event"])
    resp = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": sign(payload)},
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_payload"


def test_unconfigured_secret_is_500(client: TestClient, override_settings) -> None:
    override_settings(stripe_webhook_secret=None)
    resp = _post(client, checkout_event())
    assert resp.status_code == 500
    assert resp.json() == {"error": "webhook_not_configured"}


def test_processing_failure_is_500_and_retryable(
    client: TestClient, token: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    course = seed_course()
    event = checkout_event(course_id=course.course_id)

    async def _boom(self, user_id, course_id):
        raise RuntimeError("entitlement store unavailable")

    monkeypatch.setattr(EntitlementResolver, "grant_purchase", _boom)
    resp = _post(client, event)
    assert resp.status_code == 500
    assert resp.json() == {"error": "internal_error"}

    monkeypatch.undo()
    retry = _post(client, event)
    assert retry.json() == {"received": True, "duplicate": False}


def test_debug_errors_exposes_failure_detail(
    client: TestClient, override_settings, monkeypatch: pytest.MonkeyPatch
) -> None:
    override_settings(debug_errors=True)
    course = seed_course()

    async def _boom(self, user_id, course_id):
        raise RuntimeError("entitlement store unavailable")

    monkeypatch.setattr(EntitlementResolver, "grant_purchase", _boom)
    resp = _post(client, checkout_event(course_id=course.course_id))
    assert resp.status_code == 500
    assert resp.json()["detail"] == "RuntimeError: entitlement store unavailable"


def test_webhook_is_not_rate_limited(client: TestClient) -> None:
    for n in range(70):
        resp = _post(client, {"id": f"evt_{n}", "type": "invoice.paid", "data": {}})
        assert resp.status_code == 200
