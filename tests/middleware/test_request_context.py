"""Request ID propagation and the per-request access log line."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient


def _access_records(caplog: pytest.LogCaptureFixture) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.name == "lms.middleware.request_context"]


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    req_id = client.get("/catalog").headers["x-request-id"]
    assert uuid.UUID(req_id)


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    resp = client.get("/catalog", headers={"X-Request-ID": "lb-7f3a"})
    assert resp.headers["x-request-id"] == "lb-7f3a"


def test_each_request_gets_its_own_id(client: TestClient) -> None:
    first = client.get("/catalog").headers["x-request-id"]
    second = client.get("/catalog").headers["x-request-id"]
    assert first != second


@pytest.mark.parametrize(
    ("path", "status"), [("/me/progress", 401), ("/no/such/page", 404)]
)
def test_request_id_present_on_error_responses(
    client: TestClient, path: str, status: int
) -> None:
    resp = client.get(path)
    assert resp.status_code == status
    assert resp.headers.get("x-request-id")


def test_access_record_carries_request_context(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="lms"):
        client.get("/catalog", headers={"X-Request-ID": "trace-me-42"})

    access = _access_records(caplog)
    assert access
    record = access[-1]
    assert record.levelno == logging.INFO
    assert record.request_id == "trace-me-42"  # type: ignore[attr-defined]
    assert record.path == "/catalog"  # type: ignore[attr-defined]
    assert record.status_code == 200  # type: ignore[attr-defined]
    assert isinstance(record.duration_ms, float)  # type: ignore[attr-defined]


def test_probe_requests_log_at_debug(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.DEBUG, logger="lms"):
        client.get("/health")
        client.get("/ready")

    access = _access_records(caplog)
    assert len(access) == 2
    assert all(r.levelno == logging.DEBUG for r in access)
