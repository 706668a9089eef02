"""Progress rows: one per (user, module), written only through upserts.

Both writers resolve conflicts inside the INSERT ... ON CONFLICT
statement itself, so concurrent events for the same module never lose
time or race on status.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.dialect import insert_for
from lms.db.tables import ProgressRow
from lms.models.progress import SETTLED_STATUSES, Progress, ProgressStatus


class ProgressRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def accumulate(
        self,
        *,
        user_id: UUID,
        module_id: UUID,
        status: ProgressStatus,
        delta_secs: int,
        now: int,
    ) -> None:
        """Add time and merge status from a learner progress event.

        Status on conflict: incoming "completed" wins; a stored
        passed/completed is kept; otherwise the incoming status replaces it.
        """
        stmt = insert_for(self._session, ProgressRow).values(
            user_id=user_id,
            module_id=module_id,
            status=status,
            score=None,
            time_spent_secs=max(delta_secs, 0),
            updated_at=now,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "module_id"],
            set_={
                "time_spent_secs": ProgressRow.time_spent_secs
                + excluded.time_spent_secs,
                "status": case(
                    (excluded.status == "completed", "completed"),
                    (
                        ProgressRow.status.in_(sorted(SETTLED_STATUSES)),
                        ProgressRow.status,
                    ),
                    else_=excluded.status,
                ),
                "updated_at": excluded.updated_at,
            },
        )
        await self._session.execute(stmt)

    async def overwrite_grade(
        self,
        *,
        user_id: UUID,
        module_id: UUID,
        status: ProgressStatus,
        score: float,
        now: int,
    ) -> None:
        """Authoritative status/score write from quiz grading.  Adds no time."""
        stmt = insert_for(self._session, ProgressRow).values(
            user_id=user_id,
            module_id=module_id,
            status=status,
            score=score,
            time_spent_secs=0,
            updated_at=now,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "module_id"],
            set_={
                "status": excluded.status,
                "score": excluded.score,
                "updated_at": excluded.updated_at,
            },
        )
        await self._session.execute(stmt)

    async def get(self, user_id: UUID, module_id: UUID) -> Progress | None:
        stmt = (
            select(ProgressRow)
            .where(ProgressRow.user_id == user_id, ProgressRow.module_id == module_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_progress(row) if row is not None else None

    async def for_modules(
        self, user_id: UUID, module_ids: Iterable[UUID]
    ) -> dict[UUID, Progress]:
        ids = list(module_ids)
        if not ids:
            return {}
        stmt = (
            select(ProgressRow)
            .where(ProgressRow.user_id == user_id, ProgressRow.module_id.in_(ids))
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return {r.module_id: _row_to_progress(r) for r in rows}

    async def list_for_user(self, user_id: UUID) -> list[Progress]:
        stmt = (
            select(ProgressRow)
            .where(ProgressRow.user_id == user_id)
            .order_by(ProgressRow.updated_at.desc())
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_progress(r) for r in rows]


def _row_to_progress(row: ProgressRow) -> Progress:
    return Progress(
        user_id=row.user_id,
        module_id=row.module_id,
        status=row.status,  # type: ignore[arg-type]
        score=float(row.score) if row.score is not None else None,
        time_spent_secs=row.time_spent_secs,
        updated_at=row.updated_at,
    )
