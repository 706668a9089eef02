"""Per-(user, module) progress accumulated from noisy client events.

Clients report started/paused/seeked/completed/heartbeat pings against
an item; each ping is resolved to the item's module and folded into the
single progress row for that module:

  - time_spent_secs grows by max(delta, 0), never shrinks
  - incoming "completed" always wins
  - a stored "passed" or "completed" survives any other ping
  - otherwise the incoming status ("started") replaces the stored one

Quiz grading writes passed/failed through ``record_grade`` instead, which
is authoritative and bypasses the downgrade guard.

Unlocking is a read-time projection: the first module is always open,
module i is open iff module i-1 is exactly "passed".  A completed video
module does not open the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.clock import now_epoch
from lms.core.metrics import PROGRESS_EVENTS
from lms.db.engine import atomic
from lms.models.catalog import Item, Module
from lms.models.progress import (
    SETTLED_STATUSES,
    ModuleState,
    Progress,
    ProgressEvent,
    ProgressEventType,
)
from lms.repos.catalog_repo import CatalogRepo
from lms.repos.event_log_repo import EventLogRepo
from lms.repos.progress_repo import ProgressRepo

logger = logging.getLogger(__name__)

CompletionState = Literal["no_modules", "incomplete", "complete"]


def compute_unlocked_modules(
    modules: Sequence[Module],
    progress: Mapping[UUID, Progress],
    items: Sequence[Item] = (),
) -> list[ModuleState]:
    ordered = sorted(modules, key=lambda m: m.position)
    items_by_module: dict[UUID, list[Item]] = {}
    for item in sorted(items, key=lambda i: i.position):
        items_by_module.setdefault(item.module_id, []).append(item)

    states: list[ModuleState] = []
    previous: Progress | None = None
    for index, module in enumerate(ordered):
        unlocked = index == 0 or (previous is not None and previous.status == "passed")
        current = progress.get(module.id)
        states.append(
            ModuleState(
                module=module,
                unlocked=unlocked,
                progress=current,
                items=tuple(items_by_module.get(module.id, ())),
            )
        )
        previous = current
    return states


class ProgressLedger:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._catalog = CatalogRepo(session)
        self._progress = ProgressRepo(session)
        self._events = EventLogRepo(session)

    async def apply_progress_event(
        self,
        user_id: UUID,
        item_id: UUID,
        type: ProgressEventType,
        occurred_at: int,
        delta_secs: int = 0,
    ) -> bool:
        applied = await self.apply_progress_events(
            user_id,
            [
                ProgressEvent(
                    item_id=item_id,
                    type=type,
                    occurred_at=occurred_at,
                    delta_secs=delta_secs,
                )
            ],
        )
        return applied == 1

    async def apply_progress_events(
        self, user_id: UUID, events: Sequence[ProgressEvent]
    ) -> int:
        """Apply a batch atomically; returns how many events were applied.

        Events whose item is unknown are skipped.
        """
        module_by_item = await self._catalog.modules_for_items(
            e.item_id for e in events
        )
        applied = 0

        async with atomic(self._session):
            for event in events:
                module_id = module_by_item.get(event.item_id)
                if module_id is None:
                    logger.warning(
                        "Progress event for unknown item=%s skipped user=%s",
                        event.item_id,
                        user_id,
                    )
                    continue

                await self._events.append(
                    f"progress.{event.type}",
                    {"itemId": str(event.item_id), "deltaSecs": event.clamped_delta},
                    actor_user_id=user_id,
                    entity_type="module",
                    entity_id=module_id,
                    occurred_at=event.occurred_at,
                )
                await self._progress.accumulate(
                    user_id=user_id,
                    module_id=module_id,
                    status=event.status,
                    delta_secs=event.clamped_delta,
                    now=now_epoch(),
                )
                applied += 1

        for event in events:
            if event.item_id in module_by_item:
                PROGRESS_EVENTS.labels(type=event.type).inc()
        logger.info(
            "Progress applied user=%s events=%d skipped=%d",
            user_id,
            applied,
            len(events) - applied,
        )
        return applied

    async def record_grade(
        self, user_id: UUID, module_id: UUID, *, passed: bool, score: float
    ) -> None:
        """Authoritative write from grading.  Runs in the caller's transaction."""
        await self._progress.overwrite_grade(
            user_id=user_id,
            module_id=module_id,
            status="passed" if passed else "failed",
            score=score,
            now=now_epoch(),
        )

    async def module_outline(self, user_id: UUID, course_id: UUID) -> list[ModuleState]:
        modules = await self._catalog.list_modules(course_id)
        items = await self._catalog.list_items(course_id)
        progress = await self._progress.for_modules(user_id, [m.id for m in modules])
        return compute_unlocked_modules(modules, progress, items)

    async def is_module_unlocked(self, user_id: UUID, module_id: UUID) -> bool:
        module = await self._catalog.get_module(module_id)
        if module is None:
            return False
        modules = await self._catalog.list_modules(module.course_id)
        progress = await self._progress.for_modules(user_id, [m.id for m in modules])
        for state in compute_unlocked_modules(modules, progress):
            if state.module.id == module_id:
                return state.unlocked
        return False

    async def completion_state(self, user_id: UUID, course_id: UUID) -> CompletionState:
        modules = await self._catalog.list_modules(course_id)
        if not modules:
            return "no_modules"
        progress = await self._progress.for_modules(user_id, [m.id for m in modules])
        done = all(
            m.id in progress and progress[m.id].status in SETTLED_STATUSES
            for m in modules
        )
        return "complete" if done else "incomplete"

    async def all_modules_passed(self, user_id: UUID, course_id: UUID) -> bool:
        return await self.completion_state(user_id, course_id) == "complete"

    async def list_progress(self, user_id: UUID) -> list[Progress]:
        return await self._progress.list_for_user(user_id)
