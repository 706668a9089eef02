"""Append-only event log.  This repo only ever inserts."""

from __future__ import annotations

from typing import Any
from uuid import UUID

import ulid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.clock import now_epoch
from lms.db.tables import EventLogRow
from lms.models.event_log import LogEvent


class EventLogRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        topic: str,
        payload: dict[str, Any] | None = None,
        *,
        actor_user_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: str | UUID | None = None,
        occurred_at: int | None = None,
        source: str = "app",
        ip: str | None = None,
        ua: str | None = None,
    ) -> str:
        received_at = now_epoch()
        event_id = str(ulid.ULID())
        self._session.add(
            EventLogRow(
                event_id=event_id,
                topic=topic,
                actor_user_id=actor_user_id,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                occurred_at=occurred_at if occurred_at is not None else received_at,
                received_at=received_at,
                source=source,
                ip=ip,
                ua=ua,
                payload=payload or {},
            )
        )
        await self._session.flush()
        return event_id

    async def list_by_topic(self, topic: str, limit: int = 100) -> list[LogEvent]:
        stmt = (
            select(EventLogRow)
            .where(EventLogRow.topic == topic)
            .order_by(EventLogRow.event_id)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_event(r) for r in rows]


def _row_to_event(row: EventLogRow) -> LogEvent:
    return LogEvent(
        event_id=row.event_id,
        topic=row.topic,
        occurred_at=row.occurred_at,
        received_at=row.received_at,
        source=row.source,
        actor_user_id=row.actor_user_id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        ip=row.ip,
        ua=row.ua,
        payload=dict(row.payload or {}),
    )
