"""Read access to the course catalog (courses, tracks, modules, items, quizzes).

The catalog is authored elsewhere; nothing here writes to it.  Item
payloads are parsed into their tagged variant on the way out.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.errors import IntegrityRuleViolation
from lms.db.tables import (
    CourseRow,
    ModuleItemRow,
    ModuleRow,
    QuestionRow,
    QuizRow,
    TrackCourseRow,
    TrackRow,
)
from lms.models.catalog import (
    Course,
    CourseSummary,
    Item,
    ItemPayloadError,
    Module,
    Track,
    TrackCourse,
    parse_item_payload,
)
from lms.models.quiz import Question, Quiz


class CatalogRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_course(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return _row_to_course(row) if row is not None else None

    async def list_active_courses(self) -> list[CourseSummary]:
        courses = (
            (
                await self._session.execute(
                    select(CourseRow)
                    .where(CourseRow.active.is_(True))
                    .order_by(CourseRow.title)
                )
            )
            .scalars()
            .all()
        )

        module_counts = dict(
            (
                await self._session.execute(
                    select(ModuleRow.course_id, func.count(ModuleRow.id)).group_by(
                        ModuleRow.course_id
                    )
                )
            ).all()
        )
        item_counts = dict(
            (
                await self._session.execute(
                    select(ModuleRow.course_id, func.count(ModuleItemRow.id))
                    .join(ModuleItemRow, ModuleItemRow.module_id == ModuleRow.id)
                    .group_by(ModuleRow.course_id)
                )
            ).all()
        )

        return [
            CourseSummary(
                course=_row_to_course(c),
                module_count=int(module_counts.get(c.id, 0)),
                item_count=int(item_counts.get(c.id, 0)),
            )
            for c in courses
        ]

    async def list_active_tracks(self) -> list[Track]:
        tracks = (
            (
                await self._session.execute(
                    select(TrackRow)
                    .where(TrackRow.active.is_(True))
                    .order_by(TrackRow.title)
                )
            )
            .scalars()
            .all()
        )
        if not tracks:
            return []

        links = (
            (
                await self._session.execute(
                    select(TrackCourseRow)
                    .where(TrackCourseRow.track_id.in_([t.id for t in tracks]))
                    .order_by(TrackCourseRow.track_id, TrackCourseRow.position)
                )
            )
            .scalars()
            .all()
        )
        by_track: dict[UUID, list[TrackCourse]] = {}
        for link in links:
            by_track.setdefault(link.track_id, []).append(
                TrackCourse(
                    course_id=link.course_id,
                    position=link.position,
                    required=link.required,
                )
            )

        return [
            Track(
                id=t.id,
                slug=t.slug,
                title=t.title,
                courses=tuple(by_track.get(t.id, ())),
            )
            for t in tracks
        ]

    async def track_exists(self, track_id: UUID) -> bool:
        return await self._session.get(TrackRow, track_id) is not None

    async def track_ids_for_course(self, course_id: UUID) -> list[UUID]:
        stmt = select(TrackCourseRow.track_id).where(
            TrackCourseRow.course_id == course_id
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def get_module(self, module_id: UUID) -> Module | None:
        row = await self._session.get(ModuleRow, module_id)
        return _row_to_module(row) if row is not None else None

    async def list_modules(self, course_id: UUID) -> list[Module]:
        stmt = (
            select(ModuleRow)
            .where(ModuleRow.course_id == course_id)
            .order_by(ModuleRow.position)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_module(r) for r in rows]

    async def list_items(self, course_id: UUID) -> list[Item]:
        stmt = (
            select(ModuleItemRow)
            .join(ModuleRow, ModuleItemRow.module_id == ModuleRow.id)
            .where(ModuleRow.course_id == course_id)
            .order_by(ModuleRow.position, ModuleItemRow.position)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_item(r) for r in rows]

    async def modules_for_items(self, item_ids: Iterable[UUID]) -> dict[UUID, UUID]:
        """Map item id -> owning module id.  Unknown ids are absent."""
        ids = list(set(item_ids))
        if not ids:
            return {}
        stmt = select(ModuleItemRow.id, ModuleItemRow.module_id).where(
            ModuleItemRow.id.in_(ids)
        )
        rows = (await self._session.execute(stmt)).all()
        return {item_id: module_id for item_id, module_id in rows}

    async def get_quiz(self, quiz_id: UUID) -> Quiz | None:
        quiz = await self._session.get(QuizRow, quiz_id)
        if quiz is None:
            return None
        stmt = (
            select(QuestionRow)
            .where(QuestionRow.quiz_id == quiz_id)
            .order_by(QuestionRow.position, QuestionRow.id)
        )
        questions = (await self._session.execute(stmt)).scalars().all()
        return Quiz(
            id=quiz.id,
            module_id=quiz.module_id,
            pass_score=quiz.pass_score,
            questions=tuple(_row_to_question(q) for q in questions),
        )


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        slug=row.slug,
        title=row.title,
        summary=row.summary,
        level=row.level,
        active=row.active,
    )


def _row_to_module(row: ModuleRow) -> Module:
    return Module(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        position=row.position,
    )


def _row_to_item(row: ModuleItemRow) -> Item:
    try:
        payload = parse_item_payload(row.type, row.payload_ref)
    except ItemPayloadError as e:
        raise IntegrityRuleViolation(
            "invalid_item_payload", f"item {row.id}: {e}"
        ) from None
    return Item(
        id=row.id,
        module_id=row.module_id,
        type=row.type,  # type: ignore[arg-type]
        position=row.position,
        payload=payload,
    )


def _row_to_question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        quiz_id=row.quiz_id,
        kind=row.kind,  # type: ignore[arg-type]
        body=row.body,
        choices=tuple(row.choices or ()),
        answer_key=frozenset(str(a) for a in (row.answer_key or ())),
        position=row.position,
    )
