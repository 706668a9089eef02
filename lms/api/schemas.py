"""Shared pieces of the JSON wire format.

The API speaks camelCase; Python code uses snake_case field names and
populates models by name.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.clock import to_iso
from lms.db.engine import get_async_session
from lms.models.entitlement import Entitlement


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


SessionDep = Annotated[AsyncSession, Depends(get_async_session)]


class EntitlementOut(ApiModel):
    id: UUID
    course_id: UUID | None
    track_id: UUID | None
    source: str
    starts_at: str | None
    ends_at: str | None


def entitlement_out(e: Entitlement) -> EntitlementOut:
    return EntitlementOut(
        id=e.id,
        course_id=e.course_id,
        track_id=e.track_id,
        source=e.source,
        starts_at=to_iso(e.starts_at),
        ends_at=to_iso(e.ends_at),
    )
