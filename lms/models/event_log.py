from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class LogEvent:
    """An immutable event-log entry.

    occurred_at is when the thing happened (client or provider clock);
    received_at is when this service recorded it.
    """

    event_id: str
    topic: str
    occurred_at: int
    received_at: int
    source: str = "app"
    actor_user_id: UUID | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    ip: str | None = None
    ua: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
