"""Stripe webhook event handlers — one per typed event variant."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from paysync.database import Database
from paysync.errors import MalformedPayloadError, UnsupportedEventError
from paysync.schemas.events import (
    HANDLED_EVENT_TYPES,
    CheckoutSessionCompletedEvent,
    PriceDeletedEvent,
    PriceUpsertEvent,
    ProductDeletedEvent,
    ProductUpsertEvent,
    SubscriptionEvent,
    WebhookEvent,
)
from paysync.services.catalog_service import (
    delete_price,
    delete_product,
    upsert_price,
    upsert_product,
)
from paysync.services.subscription_service import manage_subscription_status_change

logger = logging.getLogger(__name__)


def ensure_handled(event_type: str) -> None:
    """Raise UnsupportedEventError for event kinds outside the allow-list."""
    if event_type not in HANDLED_EVENT_TYPES:
        raise UnsupportedEventError(event_type)


async def handle_product_upsert(db: Database, event: ProductUpsertEvent) -> None:
    """Handle product.created / product.updated."""
    await upsert_product(db, event.data.object)


async def handle_product_deleted(db: Database, event: ProductDeletedEvent) -> None:
    """Handle product.deleted (soft delete)."""
    await delete_product(db, event.data.object.id)


async def handle_price_upsert(db: Database, event: PriceUpsertEvent) -> None:
    """Handle price.created / price.updated."""
    await upsert_price(db, event.data.object)


async def handle_price_deleted(db: Database, event: PriceDeletedEvent) -> None:
    """Handle price.deleted (soft delete)."""
    await delete_price(db, event.data.object.id)


async def handle_subscription_change(db: Database, event: SubscriptionEvent) -> None:
    """Handle customer.subscription.created / updated / deleted."""
    subscription = event.data.object
    await manage_subscription_status_change(
        db,
        subscription_id=subscription.id,
        customer_id=subscription.customer,
        create_action=event.type == "customer.subscription.created",
    )


async def handle_checkout_session_completed(
    db: Database, event: CheckoutSessionCompletedEvent
) -> None:
    """Handle checkout.session.completed. Only subscription checkouts are reconciled."""
    session = event.data.object
    if session.mode != "subscription":
        logger.info("Checkout session %s is %s mode, nothing to reconcile", session.id, session.mode)
        return

    if not session.subscription or not session.customer:
        raise MalformedPayloadError(
            f"Subscription checkout {session.id} has no subscription or customer"
        )

    await manage_subscription_status_change(
        db,
        subscription_id=session.subscription,
        customer_id=session.customer,
        create_action=True,
    )


# Map event variants to handler functions
EVENT_HANDLERS: dict[type, Callable[[Database, Any], Awaitable[None]]] = {
    ProductUpsertEvent: handle_product_upsert,
    ProductDeletedEvent: handle_product_deleted,
    PriceUpsertEvent: handle_price_upsert,
    PriceDeletedEvent: handle_price_deleted,
    SubscriptionEvent: handle_subscription_change,
    CheckoutSessionCompletedEvent: handle_checkout_session_completed,
}


async def dispatch_event(db: Database, event: WebhookEvent) -> None:
    """Route a typed event to its handler."""
    handler = EVENT_HANDLERS[type(event)]
    logger.info("Dispatching %s (id=%s) to %s", event.type, event.id, handler.__name__)
    await handler(db, event)
