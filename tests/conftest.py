from __future__ import annotations

import asyncio
import os
import sys
import tempfile
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

# Settings are read once at import, so the test environment must be in
# place before anything under lms/ is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="lms-tests-")
WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_EMAIL = "ops@example.com"

os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/lms-test.db"
os.environ["REDIS_URL"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["ADMIN_EMAILS"] = ADMIN_EMAIL
os.environ.setdefault("LOG_LEVEL", "warning")
for _name in (
    "ADMIN_OPEN",
    "ENTITLEMENTS_ENFORCE",
    "TRACK_PUBLIC",
    "DEBUG_ERRORS",
    "JWT_PUBLIC_KEY",
    "JWT_PRIVATE_KEY",
):
    os.environ.pop(_name, None)

# Ensure repo root is on sys.path so `import lms` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from lms.api.ratelimit import _rate_limiter  # noqa: E402
from lms.core.clock import now_epoch  # noqa: E402
from lms.core.config import SETTINGS  # noqa: E402
from lms.db.engine import (  # noqa: E402
    async_session_factory,
    create_schema,
    drop_schema,
)
from lms.db.tables import (  # noqa: E402
    CourseRow,
    EntitlementRow,
    ModuleItemRow,
    ModuleRow,
    QuestionRow,
    QuizRow,
    TrackCourseRow,
    TrackRow,
    UserRow,
)
from lms.main import app  # noqa: E402
from lms.services import token_service  # noqa: E402
from lms.services.rate_limiter import InMemoryRateLimiter  # noqa: E402

LEARNER_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
OTHER_LEARNER_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")
ADMIN_ID = uuid.UUID("99999999-9999-4999-8999-999999999999")


def run(coro):
    """Drive one coroutine to completion from a sync test."""
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def reset_database() -> None:
    async def _reset() -> None:
        await drop_schema()
        await create_schema()

    run(_reset())


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if isinstance(_rate_limiter, InMemoryRateLimiter):
        _rate_limiter.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def override_settings(monkeypatch: pytest.MonkeyPatch) -> Callable[..., Any]:
    """Swap the frozen SETTINGS everywhere it was imported.

    Usage: ``override_settings(entitlements_enforce=True)``
    """

    def _override(**changes: Any):
        patched = replace(SETTINGS, **changes)
        for name, module in list(sys.modules.items()):
            if not name.startswith("lms.") or module is None:
                continue
            if getattr(module, "SETTINGS", None) is SETTINGS:
                monkeypatch.setattr(module, "SETTINGS", patched)
        return patched

    return _override


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def mint_token(
    user_id: uuid.UUID = LEARNER_ID,
    email: str | None = "learner@example.com",
    is_admin: bool = False,
    ttl_minutes: int = 15,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(
        sub=str(user_id), email=email, is_admin=is_admin, ttl_minutes=ttl_minutes
    )


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token() -> str:
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    return mint_token(user_id=ADMIN_ID, email="admin@example.com", is_admin=True)


# ---------------------------------------------------------------------------
# Catalog seeding
# ---------------------------------------------------------------------------

# (kind, choices, answer key) per default quiz question
DEFAULT_QUESTIONS: tuple[tuple[str, list[Any], list[Any]], ...] = (
    ("single", [{"id": "a"}, {"id": "b"}, {"id": "c"}], ["b"]),
    ("multiple", [{"id": "a"}, {"id": "b"}, {"id": "c"}], ["a", "c"]),
    ("truefalse", [{"id": "true"}, {"id": "false"}], [True]),
)


@dataclass
class SeededCourse:
    course_id: uuid.UUID
    module_ids: list[uuid.UUID] = field(default_factory=list)
    # first item of each module, in module order
    item_ids: list[uuid.UUID] = field(default_factory=list)
    # module index -> quiz id
    quiz_ids: dict[int, uuid.UUID] = field(default_factory=dict)
    # quiz id -> [(question id, answer key)]
    questions: dict[uuid.UUID, list[tuple[uuid.UUID, list[Any]]]] = field(
        default_factory=dict
    )

    def correct_answers(self, module_index: int) -> list[dict[str, Any]]:
        quiz_id = self.quiz_ids[module_index]
        return [
            {"questionId": str(qid), "choiceIds": [str(k).lower() for k in key]}
            for qid, key in self.questions[quiz_id]
        ]


def seed_course(
    module_kinds: tuple[str, ...] = ("video", "quiz"),
    *,
    title: str = "Python Basics",
    active: bool = True,
    pass_score: int = 70,
    questions: tuple[tuple[str, list[Any], list[Any]], ...] = DEFAULT_QUESTIONS,
) -> SeededCourse:
    """Insert a course whose modules each hold one item of the given kind."""

    async def _seed() -> SeededCourse:
        course_id = uuid.uuid4()
        seeded = SeededCourse(course_id=course_id)
        async with async_session_factory() as session:
            session.add(
                CourseRow(
                    id=course_id,
                    slug=f"course-{course_id.hex[:8]}",
                    title=title,
                    summary=f"{title} summary",
                    level="beginner",
                    active=active,
                )
            )
            for index, kind in enumerate(module_kinds):
                module_id = uuid.uuid4()
                session.add(
                    ModuleRow(
                        id=module_id,
                        course_id=course_id,
                        title=f"Module {index + 1}",
                        position=index + 1,
                    )
                )
                if kind == "quiz":
                    quiz_id = uuid.uuid4()
                    session.add(
                        QuizRow(id=quiz_id, module_id=module_id, pass_score=pass_score)
                    )
                    seeded.quiz_ids[index] = quiz_id
                    seeded.questions[quiz_id] = []
                    for position, (q_kind, choices, key) in enumerate(questions):
                        question_id = uuid.uuid4()
                        session.add(
                            QuestionRow(
                                id=question_id,
                                quiz_id=quiz_id,
                                kind=q_kind,
                                body={"text": f"Question {position + 1}"},
                                choices=choices,
                                answer_key=key,
                                position=position,
                            )
                        )
                        seeded.questions[quiz_id].append((question_id, key))
                    payload = {"quizId": str(quiz_id)}
                elif kind == "video":
                    payload = {"playbackId": f"playback-{index}"}
                else:
                    payload = {"docId": f"doc-{index}"}

                item_id = uuid.uuid4()
                session.add(
                    ModuleItemRow(
                        id=item_id,
                        module_id=module_id,
                        type=kind,
                        position=1,
                        payload_ref=payload,
                    )
                )
                seeded.module_ids.append(module_id)
                seeded.item_ids.append(item_id)
            await session.commit()
        return seeded

    return run(_seed())


def seed_track(course_ids: list[uuid.UUID], *, title: str = "Data Track") -> uuid.UUID:
    async def _seed() -> uuid.UUID:
        track_id = uuid.uuid4()
        async with async_session_factory() as session:
            session.add(
                TrackRow(
                    id=track_id,
                    slug=f"track-{track_id.hex[:8]}",
                    title=title,
                    active=True,
                )
            )
            for position, course_id in enumerate(course_ids, start=1):
                session.add(
                    TrackCourseRow(
                        track_id=track_id,
                        course_id=course_id,
                        position=position,
                        required=True,
                    )
                )
            await session.commit()
        return track_id

    return run(_seed())


def seed_entitlement(
    user_id: uuid.UUID = LEARNER_ID,
    *,
    course_id: uuid.UUID | None = None,
    track_id: uuid.UUID | None = None,
    source: str = "grant",
    starts_at: int | None = None,
    ends_at: int | None = None,
) -> None:
    async def _seed() -> None:
        now = now_epoch()
        async with async_session_factory() as session:
            session.add(
                EntitlementRow(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    course_id=course_id,
                    track_id=track_id,
                    source=source,
                    starts_at=now - 60 if starts_at is None else starts_at,
                    ends_at=ends_at,
                    created_at=now,
                )
            )
            await session.commit()

    run(_seed())


def seed_user(
    email: str, *, user_id: uuid.UUID = LEARNER_ID, full_name: str | None = None
) -> None:
    async def _seed() -> None:
        async with async_session_factory() as session:
            session.add(
                UserRow(
                    id=user_id, email=email, full_name=full_name, created_at=now_epoch()
                )
            )
            await session.commit()

    run(_seed())


# ---------------------------------------------------------------------------
# Payment provider payloads
# ---------------------------------------------------------------------------


def checkout_event(
    event_id: str = "evt_checkout_1",
    *,
    mode: str = "payment",
    course_id: uuid.UUID | None = None,
    user_id: uuid.UUID | None = LEARNER_ID,
    email: str | None = None,
    subscription: str | None = None,
) -> dict[str, Any]:
    metadata: dict[str, str] = {}
    if course_id is not None:
        metadata["course_id"] = str(course_id)
    if user_id is not None:
        metadata["user_id"] = str(user_id)
    obj: dict[str, Any] = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "mode": mode,
        "metadata": metadata,
        "payment_intent": "pi_test_1" if mode == "payment" else None,
        "subscription": subscription,
        "amount_total": 4900,
        "currency": "usd",
    }
    if email is not None:
        obj["customer_details"] = {"email": email}
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "created": 1_700_000_000,
        "data": {"object": obj},
    }


def subscription_event(
    event_id: str = "evt_sub_1",
    *,
    status: str = "active",
    user_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    metadata = {"user_id": str(user_id)} if user_id else {}
    return {
        "id": event_id,
        "type": "customer.subscription.updated",
        "created": 1_700_000_000,
        "data": {
            "object": {
                "id": "sub_test_1",
                "status": status,
                "metadata": metadata,
                "current_period_end": 1_702_592_000,
            }
        },
    }
