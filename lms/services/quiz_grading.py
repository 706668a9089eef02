"""Quiz grading.

``grade`` is pure: exact set equality per question (no partial credit),
score = 100 * correct / total kept as an exact fraction, passed decided
on that exact value (inclusive threshold), and the reported score
truncated, not rounded, to two decimals.

``submit`` records the attempt and its outcome in one transaction: the
``quiz.submitted`` event-log entry and the authoritative progress write
for the quiz's module.  A failing re-attempt therefore replaces an
earlier pass.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from fractions import Fraction
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.config import SETTINGS
from lms.core.errors import (
    AccessDenied,
    IntegrityRuleViolation,
    NotFound,
    ValidationFailed,
)
from lms.core.metrics import QUIZ_SUBMISSIONS
from lms.db.engine import atomic
from lms.models.principal import Principal
from lms.models.quiz import Answer, GradeResult, Question, Quiz
from lms.repos.catalog_repo import CatalogRepo
from lms.repos.event_log_repo import EventLogRepo
from lms.services.entitlements import EntitlementResolver
from lms.services.progress_ledger import ProgressLedger

logger = logging.getLogger(__name__)

_TRUE_WORDS = frozenset({"true", "t", "1", "yes", "y"})
_FALSE_WORDS = frozenset({"false", "f", "0", "no", "n"})


def normalize_choice(kind: str, value: object) -> str:
    """Canonical string form of a choice id for comparison."""
    if kind == "truefalse":
        if isinstance(value, bool):
            return "true" if value else "false"
        word = str(value).strip().lower()
        if word in _TRUE_WORDS:
            return "true"
        if word in _FALSE_WORDS:
            return "false"
        return word
    return str(value).strip()


def _is_correct(question: Question, submitted: frozenset[str]) -> bool:
    expected = {normalize_choice(question.kind, v) for v in question.answer_key}
    given = {normalize_choice(question.kind, v) for v in submitted}
    return given == expected


def truncate_score(score: Fraction) -> float:
    return math.floor(score * 100) / 100


def grade(quiz: Quiz, answers: Sequence[Answer]) -> GradeResult:
    if not quiz.questions:
        raise IntegrityRuleViolation("quiz_empty", "quiz has no questions")

    by_question = {a.question_id: a.choice_ids for a in answers}
    correct = sum(
        1
        for q in quiz.questions
        if _is_correct(q, by_question.get(q.id, frozenset()))
    )
    total = len(quiz.questions)
    score = Fraction(100 * correct, total)
    return GradeResult(
        correct=correct,
        total=total,
        score=truncate_score(score),
        passed=score >= quiz.pass_score,
    )


async def _ensure_entitled(
    session: AsyncSession, principal: Principal, quiz: Quiz, catalog: CatalogRepo
) -> None:
    if not SETTINGS.entitlements_enforce or principal.is_admin:
        return
    module = await catalog.get_module(quiz.module_id)
    if module is None:
        raise NotFound("quiz_not_found")
    entitled = await EntitlementResolver(session).is_entitled(
        principal.user_id, course_id=module.course_id
    )
    if not entitled:
        logger.warning(
            "Quiz access denied, no entitlement user=%s quiz=%s",
            principal.user_id,
            quiz.id,
        )
        raise AccessDenied("no_entitlement")


async def fetch_for_learner(
    session: AsyncSession, principal: Principal, quiz_id: UUID
) -> Quiz:
    """Load a quiz for display; the caller must strip answer keys."""
    catalog = CatalogRepo(session)
    quiz = await catalog.get_quiz(quiz_id)
    if quiz is None:
        raise NotFound("quiz_not_found")

    await _ensure_entitled(session, principal, quiz, catalog)

    if not principal.is_admin:
        unlocked = await ProgressLedger(session).is_module_unlocked(
            principal.user_id, quiz.module_id
        )
        if not unlocked:
            raise AccessDenied("module_locked", "previous module not passed")
    return quiz


async def submit(
    session: AsyncSession,
    principal: Principal,
    quiz_id: UUID,
    answers: Sequence[Answer],
) -> GradeResult:
    if not answers:
        raise ValidationFailed("no_answers", "at least one answer is required")

    catalog = CatalogRepo(session)
    quiz = await catalog.get_quiz(quiz_id)
    if quiz is None:
        raise NotFound("quiz_not_found")
    await _ensure_entitled(session, principal, quiz, catalog)

    result = grade(quiz, answers)

    async with atomic(session):
        await EventLogRepo(session).append(
            "quiz.submitted",
            {
                "quizId": str(quiz.id),
                "answers": [
                    {
                        "questionId": str(a.question_id),
                        "choiceIds": sorted(a.choice_ids),
                    }
                    for a in answers
                ],
                "score": result.score,
                "passed": result.passed,
                "correct": result.correct,
                "total": result.total,
            },
            actor_user_id=principal.user_id,
            entity_type="quiz",
            entity_id=quiz.id,
        )
        await ProgressLedger(session).record_grade(
            principal.user_id, quiz.module_id, passed=result.passed, score=result.score
        )

    QUIZ_SUBMISSIONS.labels(result="passed" if result.passed else "failed").inc()
    logger.info(
        "Quiz graded user=%s quiz=%s score=%.2f passed=%s",
        principal.user_id,
        quiz.id,
        result.score,
        result.passed,
        extra={"quiz_id": str(quiz.id), "module_id": str(quiz.module_id)},
    )
    return result
