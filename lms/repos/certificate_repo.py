from __future__ import annotations

import uuid
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.dialect import insert_for
from lms.db.tables import CertificateIssueRow
from lms.models.certificate import CertificateIssue


class CertificateRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: UUID, course_id: UUID) -> CertificateIssue | None:
        return await self._one(
            select(CertificateIssueRow).where(
                CertificateIssueRow.user_id == user_id,
                CertificateIssueRow.course_id == course_id,
            )
        )

    async def get_by_serial(self, serial: str) -> CertificateIssue | None:
        return await self._one(
            select(CertificateIssueRow).where(CertificateIssueRow.serial == serial)
        )

    async def get_by_hash(self, serial_hash: str) -> CertificateIssue | None:
        return await self._one(
            select(CertificateIssueRow).where(
                CertificateIssueRow.serial_hash == serial_hash
            )
        )

    async def upsert(
        self,
        *,
        user_id: UUID,
        course_id: UUID,
        asset_url: str,
        issued_at: int,
        full_name: str | None,
        serial: str,
        serial_hash: str,
        now: int,
    ) -> CertificateIssue:
        """Write the row for (user, course), inserting or fully replacing it.

        The caller has already decided every column value; the conflict
        clause only keeps the pair unique under concurrent issuance.
        """
        stmt = insert_for(self._session, CertificateIssueRow).values(
            id=uuid.uuid4(),
            user_id=user_id,
            course_id=course_id,
            asset_url=asset_url,
            issued_at=issued_at,
            full_name=full_name,
            serial=serial,
            serial_hash=serial_hash,
            updated_at=now,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "course_id"],
            set_={
                "asset_url": excluded.asset_url,
                "issued_at": excluded.issued_at,
                "full_name": excluded.full_name,
                "serial": excluded.serial,
                "serial_hash": excluded.serial_hash,
                "updated_at": excluded.updated_at,
            },
        )
        await self._session.execute(stmt)
        written = select(CertificateIssueRow).where(
            CertificateIssueRow.user_id == user_id,
            CertificateIssueRow.course_id == course_id,
        )
        written = written.execution_options(populate_existing=True)
        return _row_to_issue((await self._session.execute(written)).scalar_one())

    async def _one(self, stmt) -> CertificateIssue | None:
        stmt = stmt.execution_options(populate_existing=True)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_issue(row) if row is not None else None


def _row_to_issue(row: CertificateIssueRow) -> CertificateIssue:
    return CertificateIssue(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        asset_url=row.asset_url,
        issued_at=row.issued_at,
        full_name=row.full_name,
        serial=row.serial,
        serial_hash=row.serial_hash,
        updated_at=row.updated_at,
    )
