"""Subscription service — reconcile Stripe subscriptions into the local store."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import stripe
from pydantic import ValidationError

from paysync.billing.helpers import to_plain
from paysync.billing.stripe_client import get_subscription
from paysync.database import Database
from paysync.errors import MalformedPayloadError
from paysync.models.subscription import Subscription
from paysync.schemas.stripe import SubscriptionRecord
from paysync.services.billing_details_service import copy_billing_details_to_customer
from paysync.services.customer_service import get_user_id_for_customer

logger = logging.getLogger(__name__)

subscriptions = Subscription.__table__

_TIMESTAMP_FIELDS = (
    "created",
    "ended_at",
    "cancel_at",
    "canceled_at",
    "trial_start",
    "trial_end",
)


def _ts_to_datetime(ts: int | None) -> datetime | None:
    """Convert a Stripe Unix timestamp to an aware UTC datetime."""
    if ts is None:
        return None
    if isinstance(ts, bool) or not isinstance(ts, int):
        raise MalformedPayloadError(f"Expected a Unix timestamp, got {ts!r}")
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _get_first_item(stripe_sub: stripe.Subscription):
    """Get the first subscription item, using bracket notation to avoid
    collision with Python dict .items() in newer Stripe API versions.
    """
    sub_items = stripe_sub["items"]
    if sub_items and sub_items.data:
        return sub_items.data[0]
    return None


def _get_period(stripe_sub: stripe.Subscription) -> tuple[datetime | None, datetime | None]:
    """Extract current period start/end.

    In Stripe API 2025-08-27 (basil), current_period_start/end moved
    from the subscription object to the subscription item; older API
    versions still send them on the subscription.
    """
    item = _get_first_item(stripe_sub)
    source = item if item is not None and getattr(item, "current_period_start", None) else stripe_sub
    return (
        _ts_to_datetime(getattr(source, "current_period_start", None)),
        _ts_to_datetime(getattr(source, "current_period_end", None)),
    )


def build_subscription_record(
    stripe_sub: stripe.Subscription, user_id: uuid.UUID
) -> SubscriptionRecord:
    """Map a Stripe subscription onto a validated row.

    Raises:
        MalformedPayloadError: on an unknown status, a bad timestamp or
            any other value that does not fit the local columns.
    """
    item = _get_first_item(stripe_sub)
    period_start, period_end = _get_period(stripe_sub)
    data: dict[str, Any] = {
        "id": stripe_sub.id,
        "user_id": user_id,
        "status": stripe_sub.status,
        "price_id": item.price.id if item is not None else None,
        "quantity": getattr(item, "quantity", None) or 1,
        "cancel_at_period_end": bool(getattr(stripe_sub, "cancel_at_period_end", False)),
        "metadata": to_plain(getattr(stripe_sub, "metadata", None)) or {},
        "current_period_start": period_start,
        "current_period_end": period_end,
    }
    for name in _TIMESTAMP_FIELDS:
        data[name] = _ts_to_datetime(getattr(stripe_sub, name, None))

    try:
        return SubscriptionRecord(**data)
    except ValidationError as e:
        raise MalformedPayloadError(f"Subscription {stripe_sub.id} is malformed: {e}") from e


async def upsert_subscription(db: Database, record: SubscriptionRecord) -> None:
    """Insert or overwrite the subscription row; the status is written as-is."""
    stmt = db.upsert(
        subscriptions,
        record.model_dump(),
        immutable=("user_id", "created"),
    )
    await db.execute(stmt)


async def manage_subscription_status_change(
    db: Database,
    subscription_id: str,
    customer_id: str,
    create_action: bool = False,
) -> None:
    """Re-fetch a subscription from Stripe and mirror it locally.

    On creation, the default payment method's billing details are copied
    to the customer and the user as well.

    Raises:
        MissingCustomerMappingError: if the customer is not mapped to a user.
    """
    user_id = await get_user_id_for_customer(db, customer_id)

    stripe_sub = await get_subscription(subscription_id)
    record = build_subscription_record(stripe_sub, user_id)
    await upsert_subscription(db, record)
    logger.info(
        "Inserted/updated subscription [%s] for user [%s] (status=%s)",
        record.id,
        user_id,
        record.status,
    )

    payment_method = getattr(stripe_sub, "default_payment_method", None)
    if create_action and payment_method is not None and not isinstance(payment_method, str):
        await copy_billing_details_to_customer(db, user_id, payment_method)
