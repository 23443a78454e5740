"""Copy the default payment method's billing details to Stripe and the local user."""

import logging
import uuid
from typing import Any

from sqlalchemy import func, update

from paysync.billing.helpers import to_plain
from paysync.billing.stripe_client import update_customer_billing_details
from paysync.database import Database
from paysync.models.user import User

logger = logging.getLogger(__name__)

users = User.__table__


async def copy_billing_details_to_customer(
    db: Database, user_id: uuid.UUID, payment_method: Any
) -> bool:
    """Propagate name, phone and address from ``payment_method``.

    All three must be present; otherwise nothing is written anywhere.
    Returns True when the details were copied.
    """
    details = getattr(payment_method, "billing_details", None)
    name = getattr(details, "name", None)
    phone = getattr(details, "phone", None)
    address = getattr(details, "address", None)
    if not name or not phone or not address:
        logger.info(
            "Skipping billing details for user %s: name, phone or address missing",
            user_id,
        )
        return False

    customer = payment_method.customer
    customer_id = customer if isinstance(customer, str) else customer.id
    # Both JSON values are built before Stripe is touched.
    address_json = to_plain(address)
    payment_method_json = to_plain(payment_method[payment_method.type])

    await update_customer_billing_details(customer_id, name, phone, address_json)
    await db.execute(
        update(users)
        .where(users.c.id == user_id)
        .values(
            billing_address=address_json,
            payment_method=payment_method_json,
            updated_at=func.now(),
        )
    )
    logger.info("Billing details updated for user %s", user_id)
    return True
