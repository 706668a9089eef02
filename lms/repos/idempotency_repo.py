from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.dialect import insert_for
from lms.db.tables import IdempotencyKeyRow


class IdempotencyRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def insert_processing(self, scope: str, key: str, now: int) -> bool:
        """Atomic insert-or-ignore.  True only for the caller that created the row."""
        stmt = insert_for(self._session, IdempotencyKeyRow).values(
            scope=scope,
            key=key,
            status="processing",
            response_hash=None,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["scope", "key"]).returning(
            IdempotencyKeyRow.key
        )
        return (await self._session.execute(stmt)).first() is not None

    async def set_status(
        self,
        scope: str,
        key: str,
        status: str,
        response_hash: str | None,
        now: int,
    ) -> None:
        stmt = (
            update(IdempotencyKeyRow)
            .where(IdempotencyKeyRow.scope == scope, IdempotencyKeyRow.key == key)
            .values(status=status, response_hash=response_hash, updated_at=now)
        )
        await self._session.execute(stmt)

    async def get_status(self, scope: str, key: str) -> tuple[str, str | None] | None:
        stmt = select(IdempotencyKeyRow.status, IdempotencyKeyRow.response_hash).where(
            IdempotencyKeyRow.scope == scope, IdempotencyKeyRow.key == key
        )
        row = (await self._session.execute(stmt)).first()
        return (row[0], row[1]) if row is not None else None
