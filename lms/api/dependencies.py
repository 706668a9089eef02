from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lms.core.config import SETTINGS
from lms.core.errors import AccessDenied
from lms.models.principal import Principal
from lms.services import token_service

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def principal_from_token(raw_token: str) -> Principal:
    """Verify a bearer token and resolve the caller's identity and admin flag."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        logger.warning("Token subject is not a UUID: %r", claims.get("sub"))
        raise _unauthorized("Invalid token") from None

    email = claims.get("email") or None
    is_admin = (
        claims.get("isAdmin") is True
        or SETTINGS.is_admin_email(email)
        or SETTINGS.admin_open
    )
    return Principal(user_id=user_id, email=email, is_admin=is_admin)


def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Protected endpoints: a verified Principal or 401."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    principal = principal_from_token(credentials.credentials)
    logger.debug(
        "Token validated for user=%s admin=%s", principal.user_id, principal.is_admin
    )
    return principal


def optional_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal | None:
    """Public endpoints that behave differently for signed-in callers.

    A malformed or expired token is still rejected with 401.
    """
    if credentials is None or not credentials.credentials:
        return None
    return principal_from_token(credentials.credentials)


def require_admin(
    principal: Annotated[Principal, Depends(require_user)],
) -> Principal:
    if not principal.is_admin:
        logger.warning("Admin access denied: user=%s", principal.user_id)
        raise AccessDenied("admin_only")
    return principal
