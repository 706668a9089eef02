"""Domain errors render as ``{"error": code}`` with their status."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from lms.core.errors import (
    AccessDenied,
    IntegrityRuleViolation,
    NotFound,
    ValidationFailed,
    install_error_handlers,
)


class _Body(BaseModel):
    count: int


def _app() -> FastAPI:
    app = FastAPI()
    install_error_handlers(app)

    @app.get("/denied")
    async def denied() -> None:
        raise AccessDenied("no_entitlement")

    @app.get("/missing")
    async def missing() -> None:
        raise NotFound("quiz_not_found", "no quiz with that id")

    @app.get("/invalid")
    async def invalid() -> None:
        raise ValidationFailed("invalid_window")

    @app.get("/integrity")
    async def integrity() -> None:
        raise IntegrityRuleViolation("quiz_empty")

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("database exploded")

    @app.post("/body")
    async def body(payload: _Body) -> dict:
        return {"count": payload.count}

    return app


@pytest.fixture
def error_client() -> TestClient:
    return TestClient(_app(), raise_server_exceptions=False)


@pytest.mark.parametrize(
    ("path", "status", "code"),
    [
        ("/denied", 403, "no_entitlement"),
        ("/missing", 404, "quiz_not_found"),
        ("/invalid", 400, "invalid_window"),
        ("/integrity", 400, "quiz_empty"),
    ],
)
def test_domain_errors_map_to_status(
    error_client: TestClient, path: str, status: int, code: str
) -> None:
    resp = error_client.get(path)
    assert resp.status_code == status
    assert resp.json()["error"] == code


def test_message_is_sent_as_detail(error_client: TestClient) -> None:
    assert error_client.get("/missing").json() == {
        "error": "quiz_not_found",
        "detail": "no quiz with that id",
    }


def test_request_validation_is_400(error_client: TestClient) -> None:
    resp = error_client.post("/body", json={"count": "many"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "validation_error"
    assert body["issues"][0]["loc"] == ["body", "count"]


def test_unexpected_error_is_generic_500(error_client: TestClient) -> None:
    resp = error_client.get("/boom")
    assert resp.status_code == 500
    assert resp.json() == {"error": "internal_error"}


def test_debug_errors_adds_exception_text(
    error_client: TestClient, override_settings
) -> None:
    override_settings(debug_errors=True)
    resp = error_client.get("/boom")
    assert resp.json() == {
        "error": "internal_error",
        "detail": "RuntimeError: database exploded",
    }
