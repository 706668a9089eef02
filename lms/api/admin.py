"""Admin-only operations.

Course authoring is out of scope; the only admin write is a manual
entitlement grant (comp access, support fixes, partner cohorts).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import Field, model_validator

from lms.api.dependencies import require_admin
from lms.api.schemas import ApiModel, EntitlementOut, SessionDep, entitlement_out
from lms.core.clock import now_epoch, to_epoch
from lms.core.errors import ValidationFailed
from lms.db.engine import atomic
from lms.models.principal import Principal
from lms.repos.event_log_repo import EventLogRepo
from lms.repos.user_repo import UserRepo
from lms.services.entitlements import EntitlementResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class GrantIn(ApiModel):
    user_id: UUID | None = None
    email: str | None = Field(default=None, min_length=3, max_length=320)
    course_id: UUID | None = None
    track_id: UUID | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None

    @model_validator(mode="after")
    def _identify_user(self) -> GrantIn:
        if self.user_id is None and self.email is None:
            raise ValueError("give userId or email")
        return self


def _str_or_none(value: object) -> str | None:
    return str(value) if value is not None else None


@router.post(
    "/entitlements",
    response_model=EntitlementOut,
    status_code=status.HTTP_201_CREATED,
)
async def grant_entitlement(
    body: GrantIn,
    session: SessionDep,
    admin: Annotated[Principal, Depends(require_admin)],
) -> EntitlementOut:
    async with atomic(session):
        if body.user_id is not None:
            user_id = body.user_id
        elif body.email is not None:
            user = await UserRepo(session).get_or_create_by_email(
                body.email, now_epoch()
            )
            user_id = user.id
        else:
            raise ValidationFailed("user_required", "give userId or email")

        entitlement = await EntitlementResolver(session).grant(
            user_id,
            course_id=body.course_id,
            track_id=body.track_id,
            starts_at=to_epoch(body.starts_at) if body.starts_at else None,
            ends_at=to_epoch(body.ends_at) if body.ends_at else None,
        )
        await EventLogRepo(session).append(
            "entitlement.granted",
            {
                "userId": str(user_id),
                "courseId": _str_or_none(entitlement.course_id),
                "trackId": _str_or_none(entitlement.track_id),
                "startsAt": entitlement.starts_at,
                "endsAt": entitlement.ends_at,
            },
            actor_user_id=admin.user_id,
            entity_type="entitlement",
            entity_id=entitlement.id,
        )

    logger.info(
        "Admin %s granted entitlement=%s to user=%s",
        admin.user_id,
        entitlement.id,
        user_id,
    )
    return entitlement_out(entitlement)
