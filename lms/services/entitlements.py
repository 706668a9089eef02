"""Who may access which course.

Access to a course is the logical OR of every entitlement that is active
right now: a direct course entitlement, or an entitlement to any track
that currently contains the course.  Nothing is cached, so an expired
window is observed on the very next check.  Unknown users or courses
simply resolve to False; storage errors propagate so callers fail closed.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.clock import now_epoch
from lms.core.errors import NotFound, ValidationFailed
from lms.models.entitlement import Entitlement
from lms.repos.catalog_repo import CatalogRepo
from lms.repos.entitlement_repo import EntitlementRepo

logger = logging.getLogger(__name__)


class EntitlementResolver:
    def __init__(self, session: AsyncSession) -> None:
        self._entitlements = EntitlementRepo(session)
        self._catalog = CatalogRepo(session)

    async def is_entitled(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        track_id: UUID | None = None,
        now: int | None = None,
    ) -> bool:
        if course_id is not None and track_id is not None:
            raise ValueError("exactly one of course_id or track_id is required")
        now = now_epoch() if now is None else now

        if track_id is not None:
            return await self._entitlements.has_active(
                user_id, now, track_ids=[track_id]
            )
        if course_id is None:
            raise ValueError("exactly one of course_id or track_id is required")

        track_ids = await self._catalog.track_ids_for_course(course_id)
        return await self._entitlements.has_active(
            user_id, now, course_id=course_id, track_ids=track_ids
        )

    async def list_active(
        self, user_id: UUID, *, now: int | None = None
    ) -> list[Entitlement]:
        return await self._entitlements.list_active(
            user_id, now_epoch() if now is None else now
        )

    async def grant_purchase(self, user_id: UUID, course_id: UUID) -> bool:
        """Direct course access from a purchase.  Never shortens an existing grant."""
        now = now_epoch()
        inserted = await self._entitlements.insert_if_absent(
            user_id=user_id,
            course_id=course_id,
            source="purchase",
            starts_at=now,
            now=now,
        )
        if inserted:
            logger.info(
                "Purchase entitlement granted user=%s course=%s", user_id, course_id
            )
        return inserted

    async def grant(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        track_id: UUID | None = None,
        starts_at: int | None = None,
        ends_at: int | None = None,
    ) -> Entitlement:
        """Manual (admin) grant.  Re-granting replaces the window."""
        if (course_id is None) == (track_id is None):
            raise ValidationFailed(
                "invalid_scope", "give exactly one of courseId or trackId"
            )
        now = now_epoch()
        starts_at = now if starts_at is None else starts_at
        if ends_at is not None and ends_at <= starts_at:
            raise ValidationFailed("invalid_window", "endsAt must be after startsAt")

        if course_id is not None and await self._catalog.get_course(course_id) is None:
            raise NotFound("course_not_found")
        if track_id is not None and not await self._catalog.track_exists(track_id):
            raise NotFound("track_not_found")

        entitlement = await self._entitlements.upsert(
            user_id=user_id,
            course_id=course_id,
            track_id=track_id,
            source="grant",
            starts_at=starts_at,
            ends_at=ends_at,
            now=now,
        )
        logger.info(
            "Manual entitlement granted user=%s course=%s track=%s ends_at=%s",
            user_id,
            course_id,
            track_id,
            ends_at,
        )
        return entitlement
