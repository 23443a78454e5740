"""Stripe webhook endpoint — verifies Stripe events and dispatches them to handlers."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status

from paysync.api.deps import Database, get_database
from paysync.billing.stripe_client import construct_webhook_event
from paysync.billing.webhooks import dispatch_event, ensure_handled
from paysync.errors import UnsupportedEventError, WebhookVerificationError
from paysync.schemas.events import parse_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

HANDLER_FAILED_DETAIL = "Webhook handler failed. View the service logs."


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Database = Depends(get_database),
) -> dict[str, bool]:
    """Receive a Stripe event and mirror it into the local store.

    Every failure becomes a 400 so Stripe redelivers the event; all writes
    are idempotent, so redelivery is safe.
    """
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    # 2. Verify signature before anything is parsed
    try:
        event = construct_webhook_event(payload, sig_header)
    except WebhookVerificationError as e:
        logger.warning("Webhook rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {e}",
        ) from e

    logger.info("Webhook received: %s (id=%s)", event.type, event.id)

    # 3. Classify
    try:
        ensure_handled(event.type)
    except UnsupportedEventError as e:
        logger.info("Rejecting unsupported webhook event type: %s", event.type)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    # 4. Dispatch; any failure is reported uniformly
    try:
        await dispatch_event(db, parse_event(payload))
    except Exception as e:
        logger.exception("Error processing webhook event %s (%s)", event.id, event.type)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=HANDLER_FAILED_DETAIL,
        ) from e

    return {"received": True}
