from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

EntitlementSource = Literal["purchase", "membership", "grant"]


@dataclass(frozen=True, slots=True)
class Entitlement:
    """Time-windowed access to exactly one of a course or a track."""

    id: UUID
    user_id: UUID
    course_id: UUID | None
    track_id: UUID | None
    source: EntitlementSource
    starts_at: int
    ends_at: int | None  # None = no end
    created_at: int

    def is_active(self, now: int) -> bool:
        # half-open window [starts_at, ends_at)
        if now < self.starts_at:
            return False
        return self.ends_at is None or now < self.ends_at
