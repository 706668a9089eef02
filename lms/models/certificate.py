from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class CertificateIssue:
    id: UUID
    user_id: UUID
    course_id: UUID
    asset_url: str
    issued_at: int
    full_name: str | None
    serial: str
    serial_hash: str
    updated_at: int


def issued_at_iso(issued_at: int) -> str:
    """Epoch seconds as an ISO-8601 UTC string with millisecond precision."""
    dt = datetime.fromtimestamp(issued_at, UTC)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def certificate_hash(user_id: UUID, course_id: UUID, issued_at: int) -> str:
    """Deterministic SHA-256 over (user, course, issued-at).

    Same inputs always give the same digest; the serial plays no part.
    """
    material = json.dumps(
        {
            "userId": str(user_id),
            "courseId": str(course_id),
            "issuedAt": issued_at_iso(issued_at),
        },
        separators=(",", ":"),
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()
