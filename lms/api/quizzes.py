"""Quiz fetch (answer keys stripped) and submission."""

from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, Field, field_validator

from lms.api.dependencies import require_user
from lms.api.ratelimit import SUBMIT_LIMIT, require_rate_limit
from lms.api.schemas import ApiModel, SessionDep
from lms.models.principal import Principal
from lms.models.quiz import Answer
from lms.services import quiz_grading

router = APIRouter(prefix="/quizzes", tags=["quizzes"])

MAX_ANSWERS = 200


class QuestionOut(ApiModel):
    id: UUID
    kind: str
    body: Any
    choices: list[Any]


class QuizOut(ApiModel):
    id: UUID
    module_id: UUID
    pass_score: int
    questions: list[QuestionOut]


class QuizEnvelopeOut(ApiModel):
    quiz: QuizOut


class AnswerIn(ApiModel):
    question_id: UUID
    # players send a single value for single/truefalse and a list for
    # multiple; choice objects may arrive expanded as {"id": ...}
    choice_ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("choiceIds", "values", "value", "choices"),
    )

    @field_validator("choice_ids", mode="before")
    @classmethod
    def _as_id_list(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            value = [value]
        ids = []
        for v in value:
            if isinstance(v, dict) and "id" in v:
                v = v["id"]
            if isinstance(v, bool):
                v = "true" if v else "false"
            ids.append(str(v))
        return ids


class SubmitIn(ApiModel):
    answers: list[AnswerIn] = Field(max_length=MAX_ANSWERS)


class SubmitOut(ApiModel):
    passed: bool
    score: float
    correct: int
    total: int


@router.get("/{quiz_id}", response_model=QuizEnvelopeOut)
async def get_quiz(
    quiz_id: UUID,
    session: SessionDep,
    principal: Annotated[Principal, Depends(require_user)],
) -> QuizEnvelopeOut:
    quiz = await quiz_grading.fetch_for_learner(session, principal, quiz_id)
    return QuizEnvelopeOut(
        quiz=QuizOut(
            id=quiz.id,
            module_id=quiz.module_id,
            pass_score=quiz.pass_score,
            questions=[
                QuestionOut(id=q.id, kind=q.kind, body=q.body, choices=list(q.choices))
                for q in quiz.questions
            ],
        )
    )


@router.post(
    "/{quiz_id}/submit",
    response_model=SubmitOut,
    dependencies=[Depends(require_rate_limit(SUBMIT_LIMIT))],
)
async def submit_quiz(
    quiz_id: UUID,
    body: SubmitIn,
    session: SessionDep,
    principal: Annotated[Principal, Depends(require_user)],
) -> SubmitOut:
    answers = [
        Answer(question_id=a.question_id, choice_ids=frozenset(a.choice_ids))
        for a in body.answers
    ]
    result = await quiz_grading.submit(session, principal, quiz_id, answers)
    return SubmitOut(
        passed=result.passed,
        score=result.score,
        correct=result.correct,
        total=result.total,
    )
