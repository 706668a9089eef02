"""Payment provider webhook.

The provider signs the raw request body, so the route reads bytes and
verifies the ``Stripe-Signature`` header before anything is parsed.
Status codes drive the provider's retry behaviour:

  400  missing or invalid signature, unparseable body   (not retried)
  200  processed, or a duplicate delivery               (done)
  500  processing failed and was rolled back            (retried)
"""

from __future__ import annotations

import json
import logging

import stripe
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from lms.api.schemas import SessionDep
from lms.core.config import SETTINGS
from lms.core.errors import DomainError, ValidationFailed, internal_error_body
from lms.core.metrics import PAYMENT_WEBHOOK_EVENTS
from lms.services.payment_events import PaymentEventProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_TOLERANCE_SECS = 300


@router.post("/stripe")
async def stripe_webhook(request: Request, session: SessionDep) -> JSONResponse:
    signature = request.headers.get("stripe-signature")
    if not signature:
        PAYMENT_WEBHOOK_EVENTS.labels(outcome="rejected").inc()
        raise ValidationFailed("missing_signature")

    if not SETTINGS.stripe_webhook_secret:
        logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "webhook_not_configured"},
        )

    payload = (await request.body()).decode("utf-8", errors="replace")
    try:
        stripe.WebhookSignature.verify_header(
            payload,
            signature,
            SETTINGS.stripe_webhook_secret,
            tolerance=SIGNATURE_TOLERANCE_SECS,
        )
    except stripe.SignatureVerificationError:
        PAYMENT_WEBHOOK_EVENTS.labels(outcome="rejected").inc()
        logger.warning("Webhook signature rejected")
        raise ValidationFailed("invalid_signature") from None

    try:
        raw_event = json.loads(payload)
    except json.JSONDecodeError:
        raise ValidationFailed("invalid_payload", "body is not JSON") from None
    if not isinstance(raw_event, dict):
        raise ValidationFailed("invalid_payload", "body is not a JSON object")

    try:
        outcome = await PaymentEventProcessor(session).apply(raw_event)
    except DomainError:
        raise
    except Exception as exc:
        # already rolled back and logged by the processor
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=internal_error_body(exc),
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"received": True, "duplicate": outcome.duplicate},
    )
