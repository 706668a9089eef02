from __future__ import annotations

import uuid
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.dialect import insert_for
from lms.db.tables import EntitlementRow
from lms.models.entitlement import Entitlement, EntitlementSource


def _active_at(now: int):
    return (
        EntitlementRow.starts_at <= now,
        or_(EntitlementRow.ends_at.is_(None), EntitlementRow.ends_at > now),
    )


class EntitlementRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def has_active(
        self,
        user_id: UUID,
        now: int,
        *,
        course_id: UUID | None = None,
        track_ids: Sequence[UUID] = (),
    ) -> bool:
        scopes = []
        if course_id is not None:
            scopes.append(EntitlementRow.course_id == course_id)
        if track_ids:
            scopes.append(EntitlementRow.track_id.in_(list(track_ids)))
        if not scopes:
            return False

        stmt = (
            select(EntitlementRow.id)
            .where(EntitlementRow.user_id == user_id, *_active_at(now), or_(*scopes))
            .limit(1)
        )
        return (await self._session.execute(stmt)).first() is not None

    async def list_active(self, user_id: UUID, now: int) -> list[Entitlement]:
        stmt = (
            select(EntitlementRow)
            .where(EntitlementRow.user_id == user_id, *_active_at(now))
            .order_by(EntitlementRow.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_entitlement(r) for r in rows]

    async def insert_if_absent(
        self,
        *,
        user_id: UUID,
        course_id: UUID,
        source: EntitlementSource,
        starts_at: int,
        now: int,
    ) -> bool:
        """Insert a course entitlement unless one from this source exists.

        An existing row is left untouched (its window is never shortened).
        Returns True if a row was inserted.
        """
        stmt = insert_for(self._session, EntitlementRow).values(
            id=uuid.uuid4(),
            user_id=user_id,
            course_id=course_id,
            track_id=None,
            source=source,
            starts_at=starts_at,
            ends_at=None,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["user_id", "course_id", "source"]
        ).returning(EntitlementRow.id)
        return (await self._session.execute(stmt)).first() is not None

    async def upsert(
        self,
        *,
        user_id: UUID,
        course_id: UUID | None,
        track_id: UUID | None,
        source: EntitlementSource,
        starts_at: int,
        ends_at: int | None,
        now: int,
    ) -> Entitlement:
        """Create or replace the window of the (user, scope, source) grant."""
        stmt = insert_for(self._session, EntitlementRow).values(
            id=uuid.uuid4(),
            user_id=user_id,
            course_id=course_id,
            track_id=track_id,
            source=source,
            starts_at=starts_at,
            ends_at=ends_at,
            created_at=now,
        )
        scope_col = "course_id" if course_id is not None else "track_id"
        target = ["user_id", scope_col, "source"]
        stmt = stmt.on_conflict_do_update(
            index_elements=target,
            set_={
                "starts_at": stmt.excluded.starts_at,
                "ends_at": stmt.excluded.ends_at,
            },
        ).returning(EntitlementRow.id)
        entitlement_id = (await self._session.execute(stmt)).scalar_one()

        row = (
            await self._session.execute(
                select(EntitlementRow)
                .where(EntitlementRow.id == entitlement_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        return _row_to_entitlement(row)


def _row_to_entitlement(row: EntitlementRow) -> Entitlement:
    return Entitlement(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        track_id=row.track_id,
        source=row.source,  # type: ignore[arg-type]
        starts_at=row.starts_at,
        ends_at=row.ends_at,
        created_at=row.created_at,
    )
