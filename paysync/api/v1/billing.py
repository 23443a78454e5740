"""Billing API endpoints — pricing catalogue, Stripe customer, Checkout and Customer Portal."""

import logging
from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, status

from paysync.api.deps import Database, RequestUser, get_database, get_request_user
from paysync.billing.helpers import calculate_trial_end_unix_timestamp, get_url
from paysync.billing.stripe_client import create_checkout_session, create_portal_session
from paysync.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    CustomerResponse,
    PortalRequest,
    PortalResponse,
    PriceResponse,
    ProductResponse,
    ProductsListResponse,
)
from paysync.services.catalog_service import get_price, list_active_products
from paysync.services.customer_service import create_or_retrieve_customer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


@router.get("/products", response_model=ProductsListResponse)
async def list_products(db: Database = Depends(get_database)) -> ProductsListResponse:
    """List active products and their active prices. Public, no auth required."""
    rows = await list_active_products(db)
    return ProductsListResponse(
        products=[
            ProductResponse(
                id=row["id"],
                name=row["name"],
                description=row["description"],
                image=row["image"],
                metadata=row["metadata"] or {},
                prices=[PriceResponse(**price) for price in row["prices"]],
            )
            for row in rows
        ]
    )


@router.post("/customer", response_model=CustomerResponse)
async def resolve_customer(
    db: Database = Depends(get_database),
    user: RequestUser = Depends(get_request_user),
) -> CustomerResponse:
    """Return (creating if needed) the Stripe customer for the caller."""
    customer_id = await create_or_retrieve_customer(db, user.id, user.email)
    return CustomerResponse(customer_id=customer_id)


def _checkout_params(price: dict[str, Any], customer_id: str, redirect_path: str) -> dict[str, Any]:
    params: dict[str, Any] = {
        "allow_promotion_codes": True,
        "billing_address_collection": "required",
        "customer": customer_id,
        "customer_update": {"address": "auto"},
        "line_items": [{"price": price["id"], "quantity": 1}],
        "cancel_url": get_url(),
        "success_url": get_url(redirect_path),
    }
    if price["type"] == "recurring":
        params["mode"] = "subscription"
        trial_end = calculate_trial_end_unix_timestamp(price["trial_period_days"])
        if trial_end is not None:
            params["subscription_data"] = {"trial_end": trial_end}
    else:
        params["mode"] = "payment"
    return params


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    db: Database = Depends(get_database),
    user: RequestUser = Depends(get_request_user),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a mirrored price."""
    price = await get_price(db, body.price_id)
    if price is None or not price["active"]:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Price not found.",
        )

    customer_id = await create_or_retrieve_customer(db, user.id, user.email)

    try:
        session = await create_checkout_session(
            _checkout_params(price, customer_id, body.redirect_path)
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Unable to create checkout session.",
        ) from e

    return CheckoutResponse(session_id=session.id, checkout_url=session.url)


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    db: Database = Depends(get_database),
    user: RequestUser = Depends(get_request_user),
) -> PortalResponse:
    """Create a Stripe Customer Portal session for subscription management."""
    customer_id = await create_or_retrieve_customer(db, user.id, user.email)

    try:
        session = await create_portal_session(
            customer_id=customer_id,
            return_url=get_url(body.return_path),
        )
    except stripe.StripeError as e:
        logger.error("Stripe portal error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not create billing portal.",
        ) from e

    return PortalResponse(portal_url=session.url)
