from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from lms.models.catalog import Item, Module

ProgressEventType = Literal["started", "paused", "seeked", "completed", "heartbeat"]
ProgressStatus = Literal["started", "passed", "failed", "completed"]

PROGRESS_EVENT_TYPES: tuple[str, ...] = (
    "started",
    "paused",
    "seeked",
    "completed",
    "heartbeat",
)

# statuses a plain progress event can never move a module out of
SETTLED_STATUSES: frozenset[str] = frozenset({"passed", "completed"})


@dataclass(frozen=True, slots=True)
class Progress:
    """One row per (user, module).  time_spent_secs only ever grows."""

    user_id: UUID
    module_id: UUID
    status: ProgressStatus
    score: float | None
    time_spent_secs: int
    updated_at: int


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """A client-reported progress ping, before it is resolved to a module."""

    item_id: UUID
    type: ProgressEventType
    occurred_at: int
    delta_secs: int = 0

    @property
    def status(self) -> ProgressStatus:
        return "completed" if self.type == "completed" else "started"

    @property
    def clamped_delta(self) -> int:
        return max(self.delta_secs, 0)


@dataclass(frozen=True, slots=True)
class ModuleState:
    """Read-time projection of one module for one learner."""

    module: Module
    unlocked: bool
    progress: Progress | None
    items: tuple[Item, ...] = ()
