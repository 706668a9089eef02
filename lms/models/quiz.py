from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal
from uuid import UUID

QuestionKind = Literal["single", "multiple", "truefalse"]


@dataclass(frozen=True, slots=True)
class Question:
    id: UUID
    quiz_id: UUID
    kind: QuestionKind
    body: Any
    choices: tuple[Any, ...]
    answer_key: frozenset[str]
    position: int = 0


@dataclass(frozen=True, slots=True)
class Quiz:
    id: UUID
    module_id: UUID
    pass_score: int
    questions: tuple[Question, ...] = ()


@dataclass(frozen=True, slots=True)
class Answer:
    question_id: UUID
    choice_ids: frozenset[str]


@dataclass(frozen=True, slots=True)
class GradeResult:
    """Outcome of grading one attempt.

    score is the percentage truncated to two decimals; passed is decided
    on the exact ratio, before truncation.
    """

    correct: int
    total: int
    score: float
    passed: bool
