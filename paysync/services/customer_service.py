"""Customer service — resolve the Stripe customer behind a local user."""

import logging
import uuid

import stripe
from sqlalchemy import select

from paysync.billing.stripe_client import (
    create_customer,
    find_customer_by_email,
    retrieve_customer,
)
from paysync.database import Database
from paysync.errors import MissingCustomerMappingError
from paysync.models.customer import Customer

logger = logging.getLogger(__name__)

customers = Customer.__table__


async def get_user_id_for_customer(db: Database, stripe_customer_id: str) -> uuid.UUID:
    """Look up the local user mapped to a Stripe customer.

    Raises:
        MissingCustomerMappingError: if no mapping exists. This is not retried:
            the customer should have been mapped before any subscription event.
    """
    result = await db.execute(
        select(customers.c.user_id).where(
            customers.c.stripe_customer_id == stripe_customer_id
        )
    )
    row = result.first()
    if row is None:
        raise MissingCustomerMappingError(stripe_customer_id)
    return row["user_id"]


async def get_customer_id_for_user(db: Database, user_id: uuid.UUID) -> str | None:
    result = await db.execute(
        select(customers.c.stripe_customer_id).where(customers.c.user_id == user_id)
    )
    row = result.first()
    return row["stripe_customer_id"] if row else None


async def _customer_still_exists(stripe_customer_id: str) -> bool:
    try:
        customer = await retrieve_customer(stripe_customer_id)
    except stripe.InvalidRequestError:
        return False
    return not getattr(customer, "deleted", False)


async def upsert_customer_mapping(
    db: Database, user_id: uuid.UUID, stripe_customer_id: str
) -> None:
    """Point the user's single mapping row at ``stripe_customer_id``."""
    stmt = db.upsert(
        customers,
        {
            "id": uuid.uuid4(),
            "user_id": user_id,
            "stripe_customer_id": stripe_customer_id,
        },
        index_elements=("user_id",),
        immutable=("id",),
    )
    await db.execute(stmt)


async def create_or_retrieve_customer(db: Database, user_id: uuid.UUID, email: str) -> str:
    """Return the Stripe customer ID for a user, creating one only as a last resort.

    Order: existing mapping (if Stripe still knows the customer), then a
    Stripe customer registered with the same email, then a new customer.
    """
    existing = await get_customer_id_for_user(db, user_id)
    if existing:
        if await _customer_still_exists(existing):
            return existing
        logger.warning("Stripe customer %s not found, looking up by email", existing)

    customer = await find_customer_by_email(email)
    if customer is None:
        customer = await create_customer(email=email, user_id=str(user_id))

    await upsert_customer_mapping(db, user_id, customer.id)
    logger.info("Customer record created/updated for user %s -> %s", user_id, customer.id)
    return customer.id
