from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Verified caller identity extracted from a bearer token.

    Carried through the request via FastAPI's dependency system.
    is_admin is resolved once at authentication time (token claim,
    ADMIN_EMAILS allowlist, or the non-production ADMIN_OPEN override).
    """

    user_id: UUID
    email: str | None = None
    is_admin: bool = False
