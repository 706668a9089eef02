"""Client tracking events, written straight to the event log.

Anonymous callers are accepted only when TRACK_PUBLIC is on.  A caller
that sends a token must send a valid one.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import Field

from lms.api.dependencies import optional_user
from lms.api.ratelimit import require_rate_limit
from lms.api.schemas import ApiModel, SessionDep
from lms.core.clock import to_epoch
from lms.core.config import SETTINGS
from lms.db.engine import atomic
from lms.models.principal import Principal
from lms.repos.event_log_repo import EventLogRepo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])

MAX_TRACKING_EVENTS = 100


class TrackingEventIn(ApiModel):
    type: str = Field(min_length=2, max_length=100)
    dt: datetime | None = None
    path: str | None = Field(default=None, max_length=2048)
    referrer: str | None = Field(default=None, max_length=2048)
    session_id: str | None = Field(default=None, max_length=100)
    anon_id: str | None = Field(default=None, max_length=100)
    payload: dict[str, Any] = Field(default_factory=dict)


class TrackingBatchIn(ApiModel):
    events: list[TrackingEventIn] = Field(min_length=1, max_length=MAX_TRACKING_EVENTS)


class PageReadIn(ApiModel):
    course_id: UUID | None = None
    module_id: UUID | None = None
    item_id: UUID | None = None
    ms: int = Field(ge=0)


def _require_tracker(principal: Principal | None) -> UUID | None:
    if principal is None and not SETTINGS.track_public:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal.user_id if principal is not None else None


def _client_ip(request: Request) -> str | None:
    # the socket peer; proxy headers are caller-controlled
    return request.client.host if request.client else None


@router.post(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_rate_limit())],
)
async def track_events(
    body: TrackingBatchIn,
    request: Request,
    session: SessionDep,
    principal: Annotated[Principal | None, Depends(optional_user)],
) -> Response:
    user_id = _require_tracker(principal)
    ip = _client_ip(request)
    ua = request.headers.get("user-agent")

    log = EventLogRepo(session)
    async with atomic(session):
        for e in body.events:
            payload = {
                **e.payload,
                "path": e.path,
                "referrer": e.referrer,
                "sessionId": e.session_id,
                "anonId": e.anon_id,
            }
            await log.append(
                e.type,
                payload,
                actor_user_id=user_id,
                occurred_at=to_epoch(e.dt) if e.dt is not None else None,
                ip=ip,
                ua=ua,
            )

    logger.debug("Tracked %d events user=%s", len(body.events), user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/page-read", dependencies=[Depends(require_rate_limit())])
async def track_page_read(
    body: PageReadIn,
    request: Request,
    session: SessionDep,
    principal: Annotated[Principal | None, Depends(optional_user)],
) -> dict:
    """Reading time on a text item, reported when the reader leaves the page."""
    user_id = _require_tracker(principal)
    async with atomic(session):
        await EventLogRepo(session).append(
            "page_read",
            {
                "courseId": str(body.course_id) if body.course_id else None,
                "moduleId": str(body.module_id) if body.module_id else None,
                "itemId": str(body.item_id) if body.item_id else None,
                "ms": body.ms,
            },
            actor_user_id=user_id,
            entity_type="item" if body.item_id else None,
            entity_id=body.item_id,
            ip=_client_ip(request),
            ua=request.headers.get("user-agent"),
        )
    return {"ok": True}
