"""Pydantic v2 request/response schemas for billing endpoints."""

from typing import Any

from pydantic import BaseModel, Field

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session for a mirrored price."""

    price_id: str
    redirect_path: str = "/account"


class PortalRequest(BaseModel):
    """Request to create a Stripe Customer Portal session."""

    return_path: str = "/account"


# --- Response schemas ---


class PriceResponse(BaseModel):
    """Mirrored price for display."""

    id: str
    currency: str
    type: str
    unit_amount: int | None
    interval: str | None
    interval_count: int | None
    trial_period_days: int | None
    description: str | None = None


class ProductResponse(BaseModel):
    """Mirrored product with its active prices."""

    id: str
    name: str
    description: str | None
    image: str | None
    metadata: dict[str, Any] = Field(default_factory=dict)
    prices: list[PriceResponse]


class ProductsListResponse(BaseModel):
    """All active products."""

    products: list[ProductResponse]


class CustomerResponse(BaseModel):
    """Stripe customer resolved for the caller."""

    customer_id: str


class CheckoutResponse(BaseModel):
    """Stripe Checkout session returned to the frontend."""

    session_id: str
    checkout_url: str | None = None


class PortalResponse(BaseModel):
    """Stripe Customer Portal URL returned to the frontend."""

    portal_url: str
