"""Domain error taxonomy and the HTTP handlers that render it.

Services raise these; routers let them propagate.  Each carries a short
machine-readable ``code`` that becomes the ``error`` field of the body:

    ValidationFailed        400  malformed input, rejected before any write
    IntegrityRuleViolation  400  catalog data that cannot satisfy the call
    AccessDenied            403  no entitlement, locked module, not admin
    NotFound                404  unknown quiz / course / certificate

Anything else is an unexpected failure: the session dependency has
already rolled the transaction back, and the client gets a generic 500
(with the exception text only when DEBUG_ERRORS is on).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)


class DomainError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class ValidationFailed(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class IntegrityRuleViolation(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class AccessDenied(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 403:
        logger.warning(
            "%s %s rejected: %s", request.method, request.url.path, exc.code
        )
    body: dict[str, object] = {"error": exc.code}
    if exc.message != exc.code:
        body["detail"] = exc.message
    return JSONResponse(status_code=exc.status_code, content=body)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning("Validation failed on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "validation_error", "issues": jsonable_encoder(exc.errors())},
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=internal_error_body(exc),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)


def internal_error_body(exc: BaseException) -> dict[str, object]:
    """Body for routes that render their own 500 (the payment webhook)."""
    body: dict[str, object] = {"error": "internal_error"}
    if SETTINGS.debug_errors:
        body["detail"] = f"{type(exc).__name__}: {exc}"
    return body
