"""Rate limiting as a per-route FastAPI dependency.

Only routes that write (progress pings, quiz submissions, tracking
events, certificate issuance) declare it; reads, probes and the
provider-signed webhook are never throttled here.

Keys prefer the caller's identity over their IP: the bearer token's
``sub`` is read WITHOUT verifying the signature, because it only picks a
bucket.  A forged ``sub`` just gets a bucket of its own; authentication
still happens in require_user.
"""

from __future__ import annotations

import logging

import jwt as pyjwt
from fastapi import HTTPException, Request, status

from lms.core.metrics import RATE_LIMIT_HITS
from lms.db.redis import redis_pool
from lms.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    RedisRateLimiter,
    retry_after_header,
)

logger = logging.getLogger(__name__)

_rate_limiter: RateLimiter
if redis_pool is not None:
    _rate_limiter = RedisRateLimiter(redis_pool)
else:
    _rate_limiter = InMemoryRateLimiter()


_DEFAULT_CONFIG = RateLimitConfig()

# progress pings arrive every few seconds while a video plays
PROGRESS_LIMIT = RateLimitConfig(capacity=120, refill_rate=2.0)
SUBMIT_LIMIT = RateLimitConfig(capacity=20, refill_rate=0.2)


def require_rate_limit(config: RateLimitConfig = _DEFAULT_CONFIG):
    """Dependency factory: ``dependencies=[Depends(require_rate_limit(...))]``."""

    async def _check(request: Request) -> None:
        key = _build_key(request)
        result: RateLimitResult = await _rate_limiter.check(key, config)

        if not result.allowed:
            RATE_LIMIT_HITS.labels(
                key_type="user" if key.startswith("user:") else "ip"
            ).inc()
            logger.warning("Rate limit exceeded key=%s", key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={
                    "Retry-After": retry_after_header(result),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check


def _build_key(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            claims = pyjwt.decode(
                auth_header[7:], options={"verify_signature": False}
            )
        except pyjwt.DecodeError:
            claims = {}
        sub = claims.get("sub")
        if sub:
            return f"user:{sub}"

    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"
