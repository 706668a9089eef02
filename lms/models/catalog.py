from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Union
from uuid import UUID

ItemType = Literal["video", "text", "quiz"]


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    slug: str
    title: str
    summary: str | None = None
    level: str | None = None
    active: bool = True


@dataclass(frozen=True, slots=True)
class TrackCourse:
    course_id: UUID
    position: int
    required: bool = True


@dataclass(frozen=True, slots=True)
class Track:
    id: UUID
    slug: str
    title: str
    courses: tuple[TrackCourse, ...] = ()


@dataclass(frozen=True, slots=True)
class CourseSummary:
    """Catalog listing entry: a course plus its size."""

    course: Course
    module_count: int
    item_count: int


@dataclass(frozen=True, slots=True)
class Module:
    id: UUID
    course_id: UUID
    title: str
    position: int


# --- Item payloads ---
# The stored payload_ref blob is interpreted once, at the repo boundary,
# into one of these.  Callers match on the type, never on raw dict keys.


@dataclass(frozen=True, slots=True)
class VideoPayload:
    playback_id: str


@dataclass(frozen=True, slots=True)
class TextPayload:
    doc_id: str


@dataclass(frozen=True, slots=True)
class QuizPayload:
    quiz_id: UUID


ItemPayload = Union[VideoPayload, TextPayload, QuizPayload]


class ItemPayloadError(ValueError):
    """A stored item payload does not match its item type."""


def parse_item_payload(item_type: str, raw: dict[str, Any] | None) -> ItemPayload:
    raw = raw or {}
    try:
        if item_type == "video":
            playback_id = _first(raw, "playbackId", "playback_id")
            return VideoPayload(playback_id=str(playback_id))
        if item_type == "text":
            return TextPayload(doc_id=str(_first(raw, "docId", "doc_id")))
        if item_type == "quiz":
            return QuizPayload(quiz_id=UUID(str(_first(raw, "quizId", "quiz_id"))))
    except (KeyError, ValueError) as e:
        raise ItemPayloadError(f"invalid {item_type} payload: {e}") from None
    raise ItemPayloadError(f"unknown item type {item_type!r}")


def payload_to_json(payload: ItemPayload) -> dict[str, str]:
    if isinstance(payload, VideoPayload):
        return {"type": "video", "playbackId": payload.playback_id}
    if isinstance(payload, TextPayload):
        return {"type": "text", "docId": payload.doc_id}
    return {"type": "quiz", "quizId": str(payload.quiz_id)}


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    raise KeyError(keys[0])


@dataclass(frozen=True, slots=True)
class Item:
    id: UUID
    module_id: UUID
    type: ItemType
    position: int
    payload: ItemPayload
