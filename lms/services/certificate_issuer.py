"""Certificate materialization: one row per (user, course), always upserted.

Flag semantics:

  plain call        existing row keeps serial, issued_at and full_name
                    (a provided name only fills a missing one); the asset
                    URL is always overwritten.  First call creates the row.
  reissue           new serial; issued_at = now; name overwritten if given
  reissue + keep    new serial; original issued_at kept; name overwritten
                    if given

The integrity hash is recomputed on every write from (user, course,
issued_at), so keeping issued_at reproduces the same hash.

Completion is NOT checked here; callers decide eligibility first.
"""

from __future__ import annotations

import logging
from uuid import UUID

import ulid
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.clock import now_epoch
from lms.core.config import SETTINGS
from lms.core.errors import NotFound
from lms.core.metrics import CERTIFICATES_ISSUED
from lms.db.engine import atomic
from lms.models.certificate import CertificateIssue, certificate_hash, issued_at_iso
from lms.repos.certificate_repo import CertificateRepo
from lms.repos.event_log_repo import EventLogRepo
from lms.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)


def new_serial() -> str:
    """Time-ordered, random, URL-safe (26-char ULID)."""
    return str(ulid.ULID())


def default_asset_url(user_id: UUID, course_id: UUID) -> str:
    return f"{SETTINGS.cert_asset_base}/{user_id}/{course_id}.pdf"


def verify_url(serial: str) -> str:
    return f"{SETTINGS.app_base_url}/certificates/verify/{serial}"


class CertificateIssuer:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._certs = CertificateRepo(session)

    async def issue(
        self,
        user_id: UUID,
        course_id: UUID,
        *,
        full_name: str | None = None,
        asset_url: str | None = None,
        reissue: bool = False,
        keep_issued_at: bool = False,
        now: int | None = None,
    ) -> CertificateIssue:
        now = now_epoch() if now is None else now
        full_name = (full_name or "").strip() or None

        async with atomic(self._session):
            existing = await self._certs.get(user_id, course_id)

            if existing is None:
                mode = "first"
                serial = new_serial()
                issued_at = now
                if full_name is None:
                    user = await UserRepo(self._session).get_by_id(user_id)
                    full_name = user.full_name if user is not None else None
            elif reissue:
                mode = "reissue"
                serial = new_serial()
                issued_at = existing.issued_at if keep_issued_at else now
                full_name = full_name or existing.full_name
            else:
                mode = "refresh"
                serial = existing.serial
                issued_at = existing.issued_at
                full_name = existing.full_name or full_name

            serial_hash = certificate_hash(user_id, course_id, issued_at)
            issue = await self._certs.upsert(
                user_id=user_id,
                course_id=course_id,
                asset_url=asset_url or default_asset_url(user_id, course_id),
                issued_at=issued_at,
                full_name=full_name,
                serial=serial,
                serial_hash=serial_hash,
                now=now,
            )
            await EventLogRepo(self._session).append(
                "certificate.issued",
                {
                    "courseId": str(course_id),
                    "serial": serial,
                    "hash": serial_hash,
                    "issuedAt": issued_at_iso(issued_at),
                    "mode": mode,
                },
                actor_user_id=user_id,
                entity_type="certificate",
                entity_id=issue.id,
            )

        CERTIFICATES_ISSUED.labels(mode=mode).inc()
        logger.info(
            "Certificate %s user=%s course=%s serial=%s",
            mode,
            user_id,
            course_id,
            serial,
            extra={"course_id": str(course_id), "serial": serial},
        )
        return issue

    async def verify_serial(self, serial: str) -> CertificateIssue:
        issue = await self._certs.get_by_serial(serial)
        if issue is None:
            raise NotFound("certificate_not_found")
        return issue

    async def verify_hash(self, serial_hash: str) -> CertificateIssue:
        issue = await self._certs.get_by_hash(serial_hash.lower())
        if issue is None:
            raise NotFound("certificate_not_found")
        return issue
