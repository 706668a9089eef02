"""Payment provider events and the mutations they plan.

Incoming webhook payloads are parsed into one of a closed set of event
variants; a pure planner turns a variant into a list of mutations; a
single transactional executor applies them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union
from uuid import UUID

CheckoutMode = Literal["payment", "subscription"]
PurchaseStatus = Literal["pending", "paid", "failed", "refunded", "canceled"]


@dataclass(frozen=True, slots=True)
class UserRef:
    """How an event identifies its buyer: explicit id, else email."""

    user_id: UUID | None = None
    email: str | None = None

    @property
    def resolvable(self) -> bool:
        return self.user_id is not None or bool(self.email)


# --- Event variants ---


@dataclass(frozen=True, slots=True)
class CheckoutCompleted:
    event_id: str
    event_type: str
    created: int
    mode: CheckoutMode
    session_id: str
    user: UserRef
    course_id: UUID | None = None
    payment_intent_id: str | None = None
    subscription_id: str | None = None
    amount_cents: int | None = None
    currency: str | None = None
    current_period_end: int | None = None


@dataclass(frozen=True, slots=True)
class SubscriptionChanged:
    """customer.subscription.created / updated / deleted."""

    event_id: str
    event_type: str
    created: int
    subscription_id: str
    status: str
    user: UserRef
    current_period_end: int | None = None


@dataclass(frozen=True, slots=True)
class Unhandled:
    event_id: str
    event_type: str
    created: int


PaymentEvent = Union[CheckoutCompleted, SubscriptionChanged, Unhandled]


# --- Planned mutations ---


@dataclass(frozen=True, slots=True)
class UpsertPurchase:
    payment_intent_id: str
    checkout_session_id: str | None
    user: UserRef
    course_id: UUID | None
    amount_cents: int | None
    currency: str | None
    status: PurchaseStatus = "paid"


@dataclass(frozen=True, slots=True)
class GrantCourseEntitlement:
    user: UserRef
    course_id: UUID


@dataclass(frozen=True, slots=True)
class UpsertMembership:
    subscription_id: str
    user: UserRef
    status: str
    current_period_end: int | None


Mutation = Union[UpsertPurchase, GrantCourseEntitlement, UpsertMembership]


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    event_id: str
    event_type: str
    duplicate: bool
    applied: int = 0
