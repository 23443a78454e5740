"""Catalog service — mirror Stripe products and prices into the local store."""

import logging
from typing import Any

from sqlalchemy import func, select, update

from paysync.config import settings
from paysync.database import Database
from paysync.errors import ForeignKeyRaceError
from paysync.models.price import Price
from paysync.models.product import Product
from paysync.retry import ErrorKind, RetryPolicy, retry_with_backoff
from paysync.schemas.stripe import PriceObject, ProductObject

logger = logging.getLogger(__name__)

products = Product.__table__
prices = Price.__table__


def price_race_policy() -> RetryPolicy:
    """Fixed-delay policy for prices delivered before their product."""
    return RetryPolicy(
        max_retries=settings.price_fk_max_retries,
        delay=settings.price_fk_retry_delay,
        backoff_multiplier=1.0,
    )


async def upsert_product(db: Database, product: ProductObject) -> None:
    """Insert the product or overwrite every mutable column of the existing row."""
    stmt = db.upsert(
        products,
        {
            "id": product.id,
            "active": product.active,
            "name": product.name,
            "description": product.description,
            "image": product.image,
            "metadata": product.metadata,
        },
    )
    await db.execute(stmt)
    logger.info("Product inserted/updated: %s", product.id)


async def upsert_price(
    db: Database, price: PriceObject, race_policy: RetryPolicy | None = None
) -> None:
    """Insert or overwrite a price, waiting out a missing parent product.

    A foreign-key violation means the product event has not been applied
    yet; the write is retried on ``race_policy`` before giving up.

    Raises:
        ForeignKeyRaceError: if the product still does not exist after every retry.
        DataAccessError: for any other database failure.
    """
    policy = race_policy or price_race_policy()
    stmt = db.upsert(
        prices,
        {
            "id": price.id,
            "product_id": price.product,
            "active": price.active,
            "description": price.nickname,
            "currency": price.currency,
            "type": price.type,
            "unit_amount": price.unit_amount,
            **price.interval_fields(),
            "metadata": price.metadata,
        },
        immutable=("product_id",),
    )

    outcome = await retry_with_backoff(
        lambda: db.execute(stmt),
        policy,
        retry_on=frozenset({ErrorKind.FOREIGN_KEY}),
        label=f"Price upsert {price.id}",
    )
    if outcome.ok:
        logger.info("Price inserted/updated: %s", price.id)
        return
    if outcome.kind is ErrorKind.FOREIGN_KEY:
        raise ForeignKeyRaceError(price.id, policy.max_retries, outcome.error) from outcome.error
    raise outcome.error


async def delete_product(db: Database, product_id: str) -> None:
    """Retire a product. The row stays so existing prices keep their parent."""
    await db.execute(
        update(products)
        .where(products.c.id == product_id)
        .values(active=False, updated_at=func.now())
    )
    logger.info("Product deleted (marked inactive): %s", product_id)


async def delete_price(db: Database, price_id: str) -> None:
    """Retire a price. Subscriptions may still reference it."""
    await db.execute(
        update(prices)
        .where(prices.c.id == price_id)
        .values(active=False, updated_at=func.now())
    )
    logger.info("Price deleted (marked inactive): %s", price_id)


async def get_price(db: Database, price_id: str) -> dict[str, Any] | None:
    result = await db.execute(select(prices).where(prices.c.id == price_id))
    return result.first()


async def list_active_products(db: Database) -> list[dict[str, Any]]:
    """Active products, each with its active prices under ``"prices"``."""
    product_rows = await db.execute(
        select(products).where(products.c.active.is_(True)).order_by(products.c.name)
    )
    price_rows = await db.execute(
        select(prices)
        .where(prices.c.active.is_(True))
        .order_by(prices.c.unit_amount)
    )

    by_product: dict[str, list[dict[str, Any]]] = {}
    for row in price_rows.rows:
        by_product.setdefault(row["product_id"], []).append(row)

    return [
        {**row, "prices": by_product.get(row["id"], [])}
        for row in product_rows.rows
    ]
