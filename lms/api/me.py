"""Learner endpoints: course outline, progress, entitlements.

PATCH /me/progress is the noisy one: video players batch their pings
here every few seconds, so it carries its own rate limit and applies
the whole batch in one transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import Field, model_validator

from lms.api.dependencies import require_user
from lms.api.ratelimit import PROGRESS_LIMIT, require_rate_limit
from lms.api.schemas import ApiModel, EntitlementOut, SessionDep, entitlement_out
from lms.core.clock import now_epoch, to_epoch, to_iso
from lms.core.config import SETTINGS
from lms.core.errors import AccessDenied, NotFound
from lms.models.catalog import payload_to_json
from lms.models.principal import Principal
from lms.models.progress import ProgressEvent, ProgressEventType
from lms.repos.catalog_repo import CatalogRepo
from lms.services.entitlements import EntitlementResolver
from lms.services.progress_ledger import ProgressLedger

router = APIRouter(prefix="/me", tags=["me"])

MAX_PROGRESS_EVENTS = 500


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class ItemOut(ApiModel):
    id: UUID
    type: str
    position: int
    payload: dict[str, str]


class ModuleProgressOut(ApiModel):
    status: str
    score: float | None
    time_spent_secs: int


class ModuleOut(ApiModel):
    id: UUID
    title: str
    position: int
    unlocked: bool
    item_count: int
    items: list[ItemOut]
    progress: ModuleProgressOut | None


class OutlineOut(ApiModel):
    course_id: UUID
    items: list[ModuleOut]


class ProgressRowOut(ApiModel):
    module_id: UUID
    status: str
    score: float | None
    time_spent_secs: int
    updated_at: str | None


class ProgressListOut(ApiModel):
    modules: list[ProgressRowOut]


class ProgressEventIn(ApiModel):
    type: ProgressEventType
    item_id: UUID
    dt: datetime | None = None
    delta_secs: int = 0


class ProgressPatchIn(ApiModel):
    events: list[ProgressEventIn] = Field(min_length=1, max_length=MAX_PROGRESS_EVENTS)


class EntitlementListOut(ApiModel):
    entitlements: list[EntitlementOut]


class EntitlementCheckIn(ApiModel):
    course_id: UUID | None = None
    track_id: UUID | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> EntitlementCheckIn:
        if (self.course_id is None) == (self.track_id is None):
            raise ValueError("give exactly one of courseId or trackId")
        return self


class EntitlementCheckOut(ApiModel):
    ok: bool


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/items", response_model=OutlineOut)
async def get_course_outline(
    session: SessionDep,
    principal: Annotated[Principal, Depends(require_user)],
    course_id: Annotated[UUID, Query(alias="courseId")],
) -> OutlineOut:
    """Modules of one course in order, with unlock flags and own progress."""
    if await CatalogRepo(session).get_course(course_id) is None:
        raise NotFound("course_not_found")

    if SETTINGS.entitlements_enforce and not principal.is_admin:
        entitled = await EntitlementResolver(session).is_entitled(
            principal.user_id, course_id=course_id
        )
        if not entitled:
            raise AccessDenied("no_entitlement")

    states = await ProgressLedger(session).module_outline(principal.user_id, course_id)
    return OutlineOut(
        course_id=course_id,
        items=[
            ModuleOut(
                id=s.module.id,
                title=s.module.title,
                position=s.module.position,
                unlocked=s.unlocked,
                item_count=len(s.items),
                items=[
                    ItemOut(
                        id=i.id,
                        type=i.type,
                        position=i.position,
                        payload=payload_to_json(i.payload),
                    )
                    for i in s.items
                ],
                progress=(
                    ModuleProgressOut(
                        status=s.progress.status,
                        score=s.progress.score,
                        time_spent_secs=s.progress.time_spent_secs,
                    )
                    if s.progress is not None
                    else None
                ),
            )
            for s in states
        ],
    )


@router.get("/progress", response_model=ProgressListOut)
async def list_my_progress(
    session: SessionDep,
    principal: Annotated[Principal, Depends(require_user)],
) -> ProgressListOut:
    rows = await ProgressLedger(session).list_progress(principal.user_id)
    return ProgressListOut(
        modules=[
            ProgressRowOut(
                module_id=p.module_id,
                status=p.status,
                score=p.score,
                time_spent_secs=p.time_spent_secs,
                updated_at=to_iso(p.updated_at),
            )
            for p in rows
        ]
    )


@router.patch(
    "/progress",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_rate_limit(PROGRESS_LIMIT))],
)
async def patch_my_progress(
    body: ProgressPatchIn,
    session: SessionDep,
    principal: Annotated[Principal, Depends(require_user)],
) -> Response:
    now = now_epoch()
    events = [
        ProgressEvent(
            item_id=e.item_id,
            type=e.type,
            occurred_at=to_epoch(e.dt) if e.dt is not None else now,
            delta_secs=e.delta_secs,
        )
        for e in body.events
    ]
    await ProgressLedger(session).apply_progress_events(principal.user_id, events)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/entitlements", response_model=EntitlementListOut)
async def list_my_entitlements(
    session: SessionDep,
    principal: Annotated[Principal, Depends(require_user)],
) -> EntitlementListOut:
    active = await EntitlementResolver(session).list_active(principal.user_id)
    return EntitlementListOut(entitlements=[entitlement_out(e) for e in active])


@router.post("/entitlements/check", response_model=EntitlementCheckOut)
async def check_my_entitlement(
    body: EntitlementCheckIn,
    session: SessionDep,
    principal: Annotated[Principal, Depends(require_user)],
) -> EntitlementCheckOut:
    ok = await EntitlementResolver(session).is_entitled(
        principal.user_id, course_id=body.course_id, track_id=body.track_id
    )
    return EntitlementCheckOut(ok=ok)

