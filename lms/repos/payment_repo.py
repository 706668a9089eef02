"""Purchases, memberships and the raw webhook inbox."""

from __future__ import annotations

import uuid
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.dialect import insert_for
from lms.db.tables import MembershipRow, PurchaseRow, WebhookInboxRow


class PaymentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record_inbox(
        self,
        *,
        provider: str,
        provider_event_id: str,
        event_type: str,
        payload: dict[str, Any],
        now: int,
    ) -> bool:
        """Insert-or-ignore the raw delivery.  True if this is the first copy."""
        stmt = insert_for(self._session, WebhookInboxRow).values(
            provider=provider,
            provider_event_id=provider_event_id,
            event_type=event_type,
            payload=payload,
            received_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["provider", "provider_event_id"]
        ).returning(WebhookInboxRow.provider_event_id)
        return (await self._session.execute(stmt)).first() is not None

    async def upsert_purchase(
        self,
        *,
        provider: str,
        payment_intent_id: str,
        checkout_session_id: str | None,
        user_id: UUID | None,
        course_id: UUID | None,
        amount_cents: int | None,
        currency: str | None,
        status: str,
        now: int,
    ) -> None:
        stmt = insert_for(self._session, PurchaseRow).values(
            id=uuid.uuid4(),
            user_id=user_id,
            course_id=course_id,
            provider=provider,
            payment_intent_id=payment_intent_id,
            checkout_session_id=checkout_session_id,
            amount_cents=amount_cents,
            currency=currency,
            status=status,
            created_at=now,
            updated_at=now,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=["payment_intent_id"],
            set_={
                "status": excluded.status,
                "user_id": func.coalesce(excluded.user_id, PurchaseRow.user_id),
                "course_id": func.coalesce(excluded.course_id, PurchaseRow.course_id),
                "checkout_session_id": func.coalesce(
                    excluded.checkout_session_id, PurchaseRow.checkout_session_id
                ),
                "amount_cents": func.coalesce(
                    excluded.amount_cents, PurchaseRow.amount_cents
                ),
                "currency": func.coalesce(excluded.currency, PurchaseRow.currency),
                "updated_at": excluded.updated_at,
            },
        )
        await self._session.execute(stmt)

    async def upsert_membership(
        self,
        *,
        provider: str,
        subscription_id: str,
        user_id: UUID | None,
        status: str,
        current_period_end: int | None,
        now: int,
    ) -> None:
        stmt = insert_for(self._session, MembershipRow).values(
            id=uuid.uuid4(),
            user_id=user_id,
            provider=provider,
            external_subscription_id=subscription_id,
            status=status,
            current_period_end=current_period_end,
            updated_at=now,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=["external_subscription_id"],
            set_={
                "status": excluded.status,
                # a later event without user linkage keeps the known one
                "user_id": func.coalesce(excluded.user_id, MembershipRow.user_id),
                "current_period_end": func.coalesce(
                    excluded.current_period_end, MembershipRow.current_period_end
                ),
                "updated_at": excluded.updated_at,
            },
        )
        await self._session.execute(stmt)

    async def get_purchase(self, payment_intent_id: str) -> PurchaseRow | None:
        stmt = (
            select(PurchaseRow)
            .where(PurchaseRow.payment_intent_id == payment_intent_id)
            .execution_options(populate_existing=True)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_membership(self, subscription_id: str) -> MembershipRow | None:
        stmt = (
            select(MembershipRow)
            .where(MembershipRow.external_subscription_id == subscription_id)
            .execution_options(populate_existing=True)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()
