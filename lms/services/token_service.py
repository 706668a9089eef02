"""ES256 bearer-token verification.

Tokens are issued by the external identity provider; this service only
verifies them.  The signing key pair comes from JWT_PUBLIC_KEY /
JWT_PRIVATE_KEY (PEM).  Without them an ephemeral pair is generated on
import, which is only useful in dev and tests where ``create_access_token``
mints tokens locally.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from lms.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "lms-auth"
AUDIENCE = "lms-api"
ACCESS_TOKEN_TTL_MIN = 15


def _load_keys() -> tuple[ec.EllipticCurvePrivateKey | None, ec.EllipticCurvePublicKey]:
    if SETTINGS.jwt_public_key:
        public_key = serialization.load_pem_public_key(
            SETTINGS.jwt_public_key.encode()
        )
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            raise ValueError("JWT_PUBLIC_KEY must be an EC (P-256) public key")
        private_key = None
        if SETTINGS.jwt_private_key:
            loaded = serialization.load_pem_private_key(
                SETTINGS.jwt_private_key.encode(), password=None
            )
            if not isinstance(loaded, ec.EllipticCurvePrivateKey):
                raise ValueError("JWT_PRIVATE_KEY must be an EC (P-256) private key")
            private_key = loaded
        return private_key, public_key

    if SETTINGS.is_prod:
        raise ValueError("JWT_PUBLIC_KEY is required when APP_ENV=prod")
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


_private_key, _public_key = _load_keys()


def create_access_token(
    *,
    sub: str,
    email: str | None = None,
    is_admin: bool = False,
    ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
) -> str:
    """Sign a token with the local key (dev/test only)."""
    if _private_key is None:
        raise RuntimeError("no JWT private key configured for local token minting")
    now = datetime.now(UTC)
    payload: dict[str, object] = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    if email is not None:
        payload["email"] = email
    if is_admin:
        payload["isAdmin"] = True
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Algorithm pinned to ES256.  Raises jwt.ExpiredSignatureError or
    jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
