from __future__ import annotations

import uuid
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.dialect import insert_for
from lms.db.tables import UserRow
from lms.models.user import User, normalize_email


class UserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        row = await self._session.get(UserRow, user_id)
        return _row_to_user(row) if row is not None else None

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == normalize_email(email))
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None

    async def get_or_create_by_email(self, email: str, now: int) -> User:
        """Race-safe: concurrent callers for one email converge on one row."""
        stmt = insert_for(self._session, UserRow).values(
            id=uuid.uuid4(),
            email=normalize_email(email),
            full_name=None,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["email"])
        await self._session.execute(stmt)
        existing = select(UserRow).where(UserRow.email == normalize_email(email))
        return _row_to_user((await self._session.execute(existing)).scalar_one())


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        created_at=row.created_at,
    )
