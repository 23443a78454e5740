"""Typed webhook envelopes — one variant per handled Stripe event kind."""

from typing import Annotated, Generic, Literal, TypeVar, Union

from pydantic import Field, TypeAdapter, ValidationError

from paysync.errors import MalformedPayloadError
from paysync.schemas.stripe import (
    CheckoutSessionObject,
    DeletedObject,
    PriceObject,
    ProductObject,
    StripeModel,
    SubscriptionObject,
)

ObjectT = TypeVar("ObjectT")


class EventData(StripeModel, Generic[ObjectT]):
    object: ObjectT


class ProductUpsertEvent(StripeModel):
    id: str | None = None
    type: Literal["product.created", "product.updated"]
    data: EventData[ProductObject]


class ProductDeletedEvent(StripeModel):
    id: str | None = None
    type: Literal["product.deleted"]
    data: EventData[DeletedObject]


class PriceUpsertEvent(StripeModel):
    id: str | None = None
    type: Literal["price.created", "price.updated"]
    data: EventData[PriceObject]


class PriceDeletedEvent(StripeModel):
    id: str | None = None
    type: Literal["price.deleted"]
    data: EventData[DeletedObject]


class SubscriptionEvent(StripeModel):
    id: str | None = None
    type: Literal[
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    ]
    data: EventData[SubscriptionObject]


class CheckoutSessionCompletedEvent(StripeModel):
    id: str | None = None
    type: Literal["checkout.session.completed"]
    data: EventData[CheckoutSessionObject]


WebhookEvent = Annotated[
    Union[
        ProductUpsertEvent,
        ProductDeletedEvent,
        PriceUpsertEvent,
        PriceDeletedEvent,
        SubscriptionEvent,
        CheckoutSessionCompletedEvent,
    ],
    Field(discriminator="type"),
]

_webhook_event_adapter: TypeAdapter[WebhookEvent] = TypeAdapter(WebhookEvent)

HANDLED_EVENT_TYPES: frozenset[str] = frozenset(
    {
        "product.created",
        "product.updated",
        "product.deleted",
        "price.created",
        "price.updated",
        "price.deleted",
        "checkout.session.completed",
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    }
)


def parse_event(payload: bytes | str) -> WebhookEvent:
    """Validate a raw webhook body into its typed variant.

    Raises:
        MalformedPayloadError: if the body does not fit the variant for its type.
    """
    try:
        return _webhook_event_adapter.validate_json(payload)
    except ValidationError as e:
        raise MalformedPayloadError(f"Malformed webhook payload: {e}") from e
