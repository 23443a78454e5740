"""Pydantic v2 shapes of the Stripe objects we mirror.

Validation here is the "cast to typed column" step: anything that does not
fit the local schema fails before a statement is built.
"""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator, model_validator

PricingType = Literal["one_time", "recurring"]
PricingInterval = Literal["day", "week", "month", "year"]
SubscriptionStatus = Literal[
    "trialing",
    "active",
    "canceled",
    "incomplete",
    "incomplete_expired",
    "past_due",
    "unpaid",
    "paused",
]


def _expandable_id(value: Any) -> Any:
    """Stripe sends either an ID or the expanded object for references."""
    if isinstance(value, dict):
        return value.get("id")
    return value


class StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class DeletedObject(StripeModel):
    id: str


class ProductObject(StripeModel):
    id: str
    active: bool = True
    name: str = Field(min_length=1)
    description: str | None = None
    images: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def image(self) -> str | None:
        return self.images[0] if self.images else None


class Recurring(StripeModel):
    interval: PricingInterval
    interval_count: PositiveInt = 1
    trial_period_days: NonNegativeInt | None = None


class PriceObject(StripeModel):
    id: str
    product: str
    active: bool = True
    currency: str = Field(pattern=r"^[A-Za-z]{3}$")
    nickname: str | None = None
    type: PricingType
    unit_amount: NonNegativeInt | None = None
    recurring: Recurring | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("product", mode="before")
    @classmethod
    def _product_id(cls, value: Any) -> Any:
        return _expandable_id(value)

    @field_validator("currency")
    @classmethod
    def _lowercase_currency(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def _recurring_has_interval(self) -> "PriceObject":
        if self.type == "recurring" and self.recurring is None:
            raise ValueError("recurring price has no recurring interval")
        return self

    def interval_fields(self) -> dict[str, Any]:
        """Interval columns, populated only for recurring prices."""
        if self.type != "recurring" or self.recurring is None:
            return {"interval": None, "interval_count": None, "trial_period_days": None}
        return {
            "interval": self.recurring.interval,
            "interval_count": self.recurring.interval_count,
            "trial_period_days": self.recurring.trial_period_days,
        }


class SubscriptionObject(StripeModel):
    """The subscription as carried by an event; the full record is re-fetched."""

    id: str
    customer: str

    @field_validator("customer", mode="before")
    @classmethod
    def _customer_id(cls, value: Any) -> Any:
        return _expandable_id(value)


class CheckoutSessionObject(StripeModel):
    id: str
    mode: Literal["payment", "setup", "subscription"]
    customer: str | None = None
    subscription: str | None = None

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def _referenced_ids(cls, value: Any) -> Any:
        return _expandable_id(value)


class SubscriptionRecord(StripeModel):
    """A subscription row ready to be written."""

    id: str
    user_id: uuid.UUID
    status: SubscriptionStatus
    price_id: str | None = None
    quantity: PositiveInt = 1
    cancel_at_period_end: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)
    created: datetime
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    ended_at: datetime | None = None
    cancel_at: datetime | None = None
    canceled_at: datetime | None = None
    trial_start: datetime | None = None
    trial_end: datetime | None = None

    @model_validator(mode="after")
    def _period_is_ordered(self) -> "SubscriptionRecord":
        start, end = self.current_period_start, self.current_period_end
        if start is not None and end is not None and end < start:
            raise ValueError("current_period_end is before current_period_start")
        return self
