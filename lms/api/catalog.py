"""Public catalog: active courses with their size, and active tracks."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter

from lms.api.schemas import ApiModel, SessionDep
from lms.repos.catalog_repo import CatalogRepo

router = APIRouter(prefix="/catalog", tags=["catalog"])


class CourseOut(ApiModel):
    id: UUID
    slug: str
    title: str
    summary: str | None
    level: str | None
    module_count: int
    item_count: int


class TrackCourseOut(ApiModel):
    course_id: UUID
    position: int
    required: bool


class TrackOut(ApiModel):
    id: UUID
    slug: str
    title: str
    courses: list[TrackCourseOut]


class CatalogOut(ApiModel):
    courses: list[CourseOut]
    tracks: list[TrackOut]


@router.get("", response_model=CatalogOut)
async def get_catalog(session: SessionDep) -> CatalogOut:
    repo = CatalogRepo(session)
    summaries = await repo.list_active_courses()
    tracks = await repo.list_active_tracks()
    return CatalogOut(
        courses=[
            CourseOut(
                id=s.course.id,
                slug=s.course.slug,
                title=s.course.title,
                summary=s.course.summary,
                level=s.course.level,
                module_count=s.module_count,
                item_count=s.item_count,
            )
            for s in summaries
        ],
        tracks=[
            TrackOut(
                id=t.id,
                slug=t.slug,
                title=t.title,
                courses=[
                    TrackCourseOut(
                        course_id=tc.course_id,
                        position=tc.position,
                        required=tc.required,
                    )
                    for tc in t.courses
                ],
            )
            for t in tracks
        ],
    )
