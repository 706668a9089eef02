"""Payment provider webhook processing.

Three stages, each replaceable on its own:

  parse_event   raw provider JSON -> one closed event variant
  plan          event variant -> list of mutations (pure, no I/O)
  PaymentEventProcessor.apply
                inbox record, idempotency gate, event log, mutations,
                idempotency finish, all under one transaction

The inbox insert is committed on its own first, so the raw delivery is
kept for audit even when the guarded transaction rolls back.  If
anything after ``begin`` raises, the whole transaction is rolled back:
the idempotency key vanishes with it and the provider's retry runs the
event again from scratch.

Memberships never create entitlements here, and subscription events
without ``metadata.user_id`` leave the membership unlinked.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.clock import now_epoch
from lms.core.errors import ValidationFailed
from lms.core.metrics import PAYMENT_WEBHOOK_EVENTS
from lms.db.engine import atomic
from lms.models.payment import (
    CheckoutCompleted,
    GrantCourseEntitlement,
    Mutation,
    PaymentEvent,
    ProcessOutcome,
    SubscriptionChanged,
    Unhandled,
    UpsertMembership,
    UpsertPurchase,
    UserRef,
)
from lms.repos.catalog_repo import CatalogRepo
from lms.repos.event_log_repo import EventLogRepo
from lms.repos.payment_repo import PaymentRepo
from lms.repos.user_repo import UserRepo
from lms.services.entitlements import EntitlementResolver
from lms.services.idempotency import IdempotencyLedger

logger = logging.getLogger(__name__)

PROVIDER = "stripe"
IDEMPOTENCY_SCOPE = "webhook:stripe"

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_EVENTS = frozenset(
    {
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    }
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _ref_id(value: Any) -> str | None:
    """Provider references arrive as an id string or an expanded object."""
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, str) and value:
        return value
    return None


def _uuid_or_none(value: Any) -> UUID | None:
    if value in (None, ""):
        return None
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning("Ignoring malformed UUID in payment metadata: %r", value)
        return None


def _int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def event_object(raw: dict[str, Any]) -> dict[str, Any]:
    data = raw.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    return obj if isinstance(obj, dict) else {}


def parse_event(raw: dict[str, Any]) -> PaymentEvent:
    event_id = raw.get("id")
    event_type = raw.get("type")
    if not isinstance(event_id, str) or not event_id:
        raise ValidationFailed("invalid_event", "event id missing")
    if not isinstance(event_type, str) or not event_type:
        raise ValidationFailed("invalid_event", "event type missing")

    created = _int_or_none(raw.get("created")) or now_epoch()
    obj = event_object(raw)
    metadata = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}

    if event_type == CHECKOUT_COMPLETED:
        mode = obj.get("mode")
        session_id = _ref_id(obj.get("id"))
        if mode not in ("payment", "subscription") or session_id is None:
            return Unhandled(event_id=event_id, event_type=event_type, created=created)

        details = obj.get("customer_details")
        email = details.get("email") if isinstance(details, dict) else None
        email = email or obj.get("customer_email")
        user = UserRef(
            user_id=_uuid_or_none(
                metadata.get("user_id") or obj.get("client_reference_id")
            ),
            email=email or None,
        )
        return CheckoutCompleted(
            event_id=event_id,
            event_type=event_type,
            created=created,
            mode=mode,
            session_id=session_id,
            user=user,
            course_id=_uuid_or_none(metadata.get("course_id")),
            payment_intent_id=_ref_id(obj.get("payment_intent")),
            subscription_id=_ref_id(obj.get("subscription")),
            amount_cents=_int_or_none(obj.get("amount_total")),
            currency=obj.get("currency") or None,
            current_period_end=_int_or_none(obj.get("current_period_end")),
        )

    if event_type in SUBSCRIPTION_EVENTS:
        subscription_id = _ref_id(obj.get("id"))
        if subscription_id is None:
            raise ValidationFailed("invalid_event", "subscription id missing")
        return SubscriptionChanged(
            event_id=event_id,
            event_type=event_type,
            created=created,
            subscription_id=subscription_id,
            status=str(obj.get("status") or "unknown"),
            user=UserRef(user_id=_uuid_or_none(metadata.get("user_id"))),
            current_period_end=_int_or_none(obj.get("current_period_end")),
        )

    return Unhandled(event_id=event_id, event_type=event_type, created=created)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def plan(event: PaymentEvent) -> list[Mutation]:
    if isinstance(event, CheckoutCompleted):
        if event.mode == "payment":
            mutations: list[Mutation] = [
                UpsertPurchase(
                    # one row per payment intent; the session id stands in
                    # when the provider omits the intent
                    payment_intent_id=event.payment_intent_id or event.session_id,
                    checkout_session_id=event.session_id,
                    user=event.user,
                    course_id=event.course_id,
                    amount_cents=event.amount_cents,
                    currency=event.currency,
                    status="paid",
                )
            ]
            if event.course_id is not None:
                mutations.append(
                    GrantCourseEntitlement(user=event.user, course_id=event.course_id)
                )
            return mutations

        if event.subscription_id is None:
            return []
        return [
            UpsertMembership(
                subscription_id=event.subscription_id,
                user=event.user,
                status="active",
                current_period_end=event.current_period_end,
            )
        ]

    if isinstance(event, SubscriptionChanged):
        return [
            UpsertMembership(
                subscription_id=event.subscription_id,
                user=event.user,
                status=event.status,
                current_period_end=event.current_period_end,
            )
        ]

    return []


def outcome_hash(event: PaymentEvent, mutations: list[Mutation]) -> str:
    material = json.dumps(
        {
            "eventId": event.event_id,
            "type": event.event_type,
            "mutations": [type(m).__name__ for m in mutations],
        },
        separators=(",", ":"),
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class PaymentEventProcessor:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._payments = PaymentRepo(session)
        self._users = UserRepo(session)
        self._resolved: dict[UserRef, UUID | None] = {}

    async def apply(self, raw: dict[str, Any]) -> ProcessOutcome:
        event = parse_event(raw)
        now = now_epoch()

        async with atomic(self._session):
            first_copy = await self._payments.record_inbox(
                provider=PROVIDER,
                provider_event_id=event.event_id,
                event_type=event.event_type,
                payload=raw,
                now=now,
            )
        if not first_copy:
            logger.info("Redelivered payment event id=%s", event.event_id)

        ledger = IdempotencyLedger(self._session)
        try:
            if await ledger.begin(event.event_id, IDEMPOTENCY_SCOPE) == "exists":
                await self._session.rollback()
                PAYMENT_WEBHOOK_EVENTS.labels(outcome="duplicate").inc()
                return ProcessOutcome(
                    event_id=event.event_id,
                    event_type=event.event_type,
                    duplicate=True,
                )

            await EventLogRepo(self._session).append(
                event.event_type,
                event_object(raw),
                entity_type="payment_event",
                entity_id=event.event_id,
                occurred_at=event.created,
                source=PROVIDER,
            )

            mutations = plan(event)
            for mutation in mutations:
                await self._execute(mutation, now)

            await ledger.finish(
                event.event_id,
                IDEMPOTENCY_SCOPE,
                "succeeded",
                outcome_hash(event, mutations),
            )
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            PAYMENT_WEBHOOK_EVENTS.labels(outcome="failed").inc()
            logger.exception(
                "Payment event rolled back id=%s type=%s",
                event.event_id,
                event.event_type,
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            raise

        PAYMENT_WEBHOOK_EVENTS.labels(outcome="processed").inc()
        logger.info(
            "Payment event processed id=%s type=%s mutations=%d",
            event.event_id,
            event.event_type,
            len(mutations),
            extra={"event_id": event.event_id, "event_type": event.event_type},
        )
        return ProcessOutcome(
            event_id=event.event_id,
            event_type=event.event_type,
            duplicate=False,
            applied=len(mutations),
        )

    async def _resolve_user(self, ref: UserRef, now: int) -> UUID | None:
        """Explicit id wins; otherwise find or create the user by email."""
        if ref in self._resolved:
            return self._resolved[ref]
        user_id = ref.user_id
        if user_id is None and ref.email:
            user_id = (await self._users.get_or_create_by_email(ref.email, now)).id
        self._resolved[ref] = user_id
        return user_id

    async def _execute(self, mutation: Mutation, now: int) -> None:
        if isinstance(mutation, UpsertPurchase):
            await self._payments.upsert_purchase(
                provider=PROVIDER,
                payment_intent_id=mutation.payment_intent_id,
                checkout_session_id=mutation.checkout_session_id,
                user_id=await self._resolve_user(mutation.user, now),
                course_id=mutation.course_id,
                amount_cents=mutation.amount_cents,
                currency=mutation.currency,
                status=mutation.status,
                now=now,
            )
        elif isinstance(mutation, GrantCourseEntitlement):
            user_id = await self._resolve_user(mutation.user, now)
            if user_id is None:
                logger.warning(
                    "Purchase of course=%s has no resolvable buyer, no entitlement",
                    mutation.course_id,
                )
                return
            if await CatalogRepo(self._session).get_course(mutation.course_id) is None:
                logger.warning(
                    "Purchase references unknown course=%s, no entitlement",
                    mutation.course_id,
                )
                return
            await EntitlementResolver(self._session).grant_purchase(
                user_id, mutation.course_id
            )
        elif isinstance(mutation, UpsertMembership):
            await self._payments.upsert_membership(
                provider=PROVIDER,
                subscription_id=mutation.subscription_id,
                user_id=await self._resolve_user(mutation.user, now),
                status=mutation.status,
                current_period_end=mutation.current_period_end,
                now=now,
            )
        else:
            raise TypeError(f"unknown mutation {mutation!r}")
