from __future__ import annotations

import uuid

import pytest

from lms.core.clock import now_epoch
from lms.core.errors import NotFound, ValidationFailed
from lms.db.engine import async_session_factory
from lms.services.entitlements import EntitlementResolver
from tests.conftest import (
    LEARNER_ID,
    OTHER_LEARNER_ID,
    run,
    seed_course,
    seed_entitlement,
    seed_track,
)


def _is_entitled(user_id=LEARNER_ID, **scope) -> bool:
    async def _check() -> bool:
        async with async_session_factory() as session:
            return await EntitlementResolver(session).is_entitled(user_id, **scope)

    return run(_check())


# ---- direct course entitlements ----


def test_no_entitlement_means_no_access() -> None:
    course = seed_course()
    assert _is_entitled(course_id=course.course_id) is False


def test_direct_course_entitlement_grants_access() -> None:
    course = seed_course()
    seed_entitlement(course_id=course.course_id)
    assert _is_entitled(course_id=course.course_id) is True


def test_entitlement_belongs_to_one_user() -> None:
    course = seed_course()
    seed_entitlement(course_id=course.course_id)
    assert _is_entitled(OTHER_LEARNER_ID, course_id=course.course_id) is False


def test_unknown_course_is_not_entitled() -> None:
    assert _is_entitled(course_id=uuid.uuid4()) is False


# ---- time window ----


def test_window_is_half_open() -> None:
    course = seed_course()
    now = now_epoch()
    seed_entitlement(course_id=course.course_id, starts_at=now - 100, ends_at=now + 100)

    async def _at(t: int) -> bool:
        async with async_session_factory() as session:
            return await EntitlementResolver(session).is_entitled(
                LEARNER_ID, course_id=course.course_id, now=t
            )

    assert run(_at(now - 101)) is False
    assert run(_at(now - 100)) is True
    assert run(_at(now + 99)) is True
    assert run(_at(now + 100)) is False


def test_expired_entitlement_denies() -> None:
    course = seed_course()
    now = now_epoch()
    seed_entitlement(course_id=course.course_id, starts_at=now - 7200, ends_at=now - 1)
    assert _is_entitled(course_id=course.course_id) is False


def test_future_entitlement_denies() -> None:
    course = seed_course()
    seed_entitlement(course_id=course.course_id, starts_at=now_epoch() + 3600)
    assert _is_entitled(course_id=course.course_id) is False


# ---- tracks ----


def test_track_entitlement_covers_member_courses() -> None:
    first = seed_course(title="A")
    second = seed_course(title="B")
    track_id = seed_track([first.course_id, second.course_id])
    seed_entitlement(track_id=track_id)

    assert _is_entitled(course_id=first.course_id) is True
    assert _is_entitled(course_id=second.course_id) is True
    assert _is_entitled(track_id=track_id) is True


def test_track_entitlement_does_not_cover_other_courses() -> None:
    member = seed_course(title="A")
    outsider = seed_course(title="B")
    track_id = seed_track([member.course_id])
    seed_entitlement(track_id=track_id)
    assert _is_entitled(course_id=outsider.course_id) is False


def test_course_entitlement_does_not_grant_track() -> None:
    course = seed_course()
    track_id = seed_track([course.course_id])
    seed_entitlement(course_id=course.course_id)
    assert _is_entitled(track_id=track_id) is False


def test_exactly_one_scope_required() -> None:
    with pytest.raises(ValueError):
        _is_entitled()
    with pytest.raises(ValueError):
        _is_entitled(course_id=uuid.uuid4(), track_id=uuid.uuid4())


# ---- purchases and manual grants ----


def test_grant_purchase_is_idempotent() -> None:
    course = seed_course()

    async def _grant() -> bool:
        async with async_session_factory() as session:
            inserted = await EntitlementResolver(session).grant_purchase(
                LEARNER_ID, course.course_id
            )
            await session.commit()
            return inserted

    assert run(_grant()) is True
    assert run(_grant()) is False
    assert _is_entitled(course_id=course.course_id) is True


def test_grant_purchase_never_shortens_existing_grant() -> None:
    course = seed_course()
    seed_entitlement(course_id=course.course_id, source="purchase", ends_at=None)

    async def _grant_and_list():
        async with async_session_factory() as session:
            resolver = EntitlementResolver(session)
            await resolver.grant_purchase(LEARNER_ID, course.course_id)
            await session.commit()
            return await resolver.list_active(LEARNER_ID)

    active = run(_grant_and_list())
    assert len(active) == 1
    assert active[0].ends_at is None


def test_manual_grant_replaces_window() -> None:
    course = seed_course()
    now = now_epoch()

    async def _grant(ends_at: int):
        async with async_session_factory() as session:
            ent = await EntitlementResolver(session).grant(
                LEARNER_ID, course_id=course.course_id, starts_at=now, ends_at=ends_at
            )
            await session.commit()
            return ent

    first = run(_grant(now + 100))
    second = run(_grant(now + 500))
    assert first.id == second.id
    assert second.ends_at == now + 500


def test_manual_grant_validates_input() -> None:
    course = seed_course()
    now = now_epoch()

    async def _grant(**kwargs):
        async with async_session_factory() as session:
            return await EntitlementResolver(session).grant(LEARNER_ID, **kwargs)

    with pytest.raises(ValidationFailed) as exc:
        run(_grant())
    assert exc.value.code == "invalid_scope"

    with pytest.raises(ValidationFailed) as exc:
        run(_grant(course_id=course.course_id, starts_at=now, ends_at=now))
    assert exc.value.code == "invalid_window"

    with pytest.raises(NotFound) as exc:
        run(_grant(course_id=uuid.uuid4()))
    assert exc.value.code == "course_not_found"

    with pytest.raises(NotFound) as exc:
        run(_grant(track_id=uuid.uuid4()))
    assert exc.value.code == "track_not_found"
