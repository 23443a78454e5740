"""Tests for subscription reconciliation."""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
import stripe
from sqlalchemy import select

from paysync.database import Database
from paysync.errors import MalformedPayloadError, MissingCustomerMappingError
from paysync.models.subscription import SUBSCRIPTION_STATUSES
from paysync.schemas.stripe import PriceObject, ProductObject
from paysync.services.catalog_service import upsert_price, upsert_product
from paysync.services.customer_service import upsert_customer_mapping
from paysync.services.subscription_service import (
    _get_period,
    _ts_to_datetime,
    build_subscription_record,
    manage_subscription_status_change,
    subscriptions,
)

SERVICE = "paysync.services.subscription_service"

PERIOD_START = 1700000000
PERIOD_END = 1702600000
CREATED = 1699990000


class _StripeObj(SimpleNamespace):
    """SimpleNamespace with bracket notation support (like Stripe API objects)."""

    def __getitem__(self, key: str):
        return getattr(self, key)


def _make_stripe_sub(
    status: str = "active",
    price_id: str = "price_monthly",
    sub_id: str = "sub_test_123",
    customer: str = "cus_test_123",
    period_start: int | None = PERIOD_START,
    period_end: int | None = PERIOD_END,
    **extra,
) -> _StripeObj:
    """Create a fake Stripe Subscription with item-level periods."""
    fields = {
        "id": sub_id,
        "customer": customer,
        "status": status,
        "created": CREATED,
        "cancel_at_period_end": False,
        "metadata": {},
        "ended_at": None,
        "cancel_at": None,
        "canceled_at": None,
        "trial_start": None,
        "trial_end": None,
        "default_payment_method": None,
        "items": _StripeObj(
            data=[
                _StripeObj(
                    price=_StripeObj(id=price_id),
                    quantity=1,
                    current_period_start=period_start,
                    current_period_end=period_end,
                )
            ]
        ),
    }
    fields.update(extra)
    return _StripeObj(**fields)


def _construct_stripe_sub(**extra) -> stripe.Subscription:
    """Build a real ``stripe.Subscription`` the way the API client returns it."""
    values = {
        "id": "sub_test_123",
        "object": "subscription",
        "customer": "cus_test_123",
        "status": "active",
        "created": CREATED,
        "cancel_at_period_end": False,
        "metadata": {"plan": "pro"},
        "default_payment_method": None,
        "items": {
            "object": "list",
            "data": [
                {
                    "id": "si_123",
                    "object": "subscription_item",
                    "price": {"id": "price_monthly", "object": "price"},
                    "quantity": 2,
                    "current_period_start": PERIOD_START,
                    "current_period_end": PERIOD_END,
                }
            ],
        },
    }
    values.update(extra)
    return stripe.Subscription.construct_from(values, "sk_test_123")


def _naive(ts: int) -> datetime:
    # SQLite hands DateTime(timezone=True) columns back without tzinfo.
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


@pytest_asyncio.fixture
async def mapped_user(database: Database, test_user_id: uuid.UUID) -> uuid.UUID:
    """A user mapped to cus_test_123, with the price_monthly catalog in place."""
    await upsert_customer_mapping(database, test_user_id, "cus_test_123")
    await upsert_product(database, ProductObject(id="prod_pro", name="Pro"))
    await upsert_price(
        database,
        PriceObject.model_validate(
            {
                "id": "price_monthly",
                "product": "prod_pro",
                "currency": "usd",
                "type": "recurring",
                "unit_amount": 2900,
                "recurring": {"interval": "month"},
            }
        ),
    )
    return test_user_id


async def _get_subscription_row(database: Database, sub_id: str = "sub_test_123") -> dict | None:
    result = await database.execute(select(subscriptions).where(subscriptions.c.id == sub_id))
    return result.first()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestTimestamps:
    def test_converts_to_aware_utc(self):
        assert _ts_to_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_none_passes_through(self):
        assert _ts_to_datetime(None) is None

    @pytest.mark.parametrize("value", ["1700000000", 1.5, True])
    def test_non_integer_is_malformed(self, value):
        with pytest.raises(MalformedPayloadError):
            _ts_to_datetime(value)


class TestGetPeriod:
    def test_item_level_period(self):
        start, end = _get_period(_make_stripe_sub())
        assert start == datetime.fromtimestamp(PERIOD_START, tz=timezone.utc)
        assert end == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)

    def test_falls_back_to_subscription_level(self):
        sub = _make_stripe_sub(period_start=None, period_end=None)
        sub.current_period_start = PERIOD_START
        sub.current_period_end = PERIOD_END

        start, end = _get_period(sub)
        assert start == datetime.fromtimestamp(PERIOD_START, tz=timezone.utc)
        assert end == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)

    def test_no_items(self):
        assert _get_period(_make_stripe_sub(items=_StripeObj(data=[]))) == (None, None)


class TestBuildSubscriptionRecord:
    def test_maps_fields(self):
        user_id = uuid.uuid4()
        record = build_subscription_record(
            _make_stripe_sub(cancel_at_period_end=True, metadata={"plan": "pro"}), user_id
        )
        assert record.user_id == user_id
        assert record.price_id == "price_monthly"
        assert record.status == "active"
        assert record.quantity == 1
        assert record.cancel_at_period_end is True
        assert record.metadata == {"plan": "pro"}
        assert record.created == datetime.fromtimestamp(CREATED, tz=timezone.utc)
        assert record.trial_end is None

    @pytest.mark.parametrize("status", SUBSCRIPTION_STATUSES)
    def test_every_status_is_accepted_as_is(self, status):
        record = build_subscription_record(_make_stripe_sub(status=status), uuid.uuid4())
        assert record.status == status

    def test_unknown_status_is_malformed(self):
        with pytest.raises(MalformedPayloadError):
            build_subscription_record(_make_stripe_sub(status="frozen"), uuid.uuid4())

    def test_period_end_before_start_is_malformed(self):
        with pytest.raises(MalformedPayloadError):
            build_subscription_record(
                _make_stripe_sub(period_start=PERIOD_END, period_end=PERIOD_START),
                uuid.uuid4(),
            )

    def test_stripe_subscription_object(self):
        record = build_subscription_record(_construct_stripe_sub(), uuid.uuid4())

        assert type(record.metadata) is dict
        assert record.metadata == {"plan": "pro"}
        assert record.price_id == "price_monthly"
        assert record.quantity == 2
        assert record.current_period_start == datetime.fromtimestamp(PERIOD_START, tz=timezone.utc)
        assert record.canceled_at is None

    def test_stripe_subscription_without_metadata(self):
        record = build_subscription_record(_construct_stripe_sub(metadata={}), uuid.uuid4())
        assert record.metadata == {}


# ---------------------------------------------------------------------------
# manage_subscription_status_change
# ---------------------------------------------------------------------------


class TestManageSubscriptionStatusChange:
    async def test_creates_row(self, database: Database, mapped_user: uuid.UUID):
        with patch(
            f"{SERVICE}.get_subscription",
            new_callable=AsyncMock,
            return_value=_make_stripe_sub(),
        ) as get_sub:
            await manage_subscription_status_change(database, "sub_test_123", "cus_test_123")

        get_sub.assert_awaited_once_with("sub_test_123")
        row = await _get_subscription_row(database)
        assert row["user_id"] == mapped_user
        assert row["price_id"] == "price_monthly"
        assert row["status"] == "active"
        assert row["current_period_start"] == _naive(PERIOD_START)
        assert row["current_period_end"] == _naive(PERIOD_END)
        assert row["created"] == _naive(CREATED)

    async def test_update_overwrites_status(self, database: Database, mapped_user: uuid.UUID):
        with patch(f"{SERVICE}.get_subscription", new_callable=AsyncMock) as get_sub:
            get_sub.return_value = _make_stripe_sub(status="trialing")
            await manage_subscription_status_change(database, "sub_test_123", "cus_test_123")
            get_sub.return_value = _make_stripe_sub(
                status="canceled", canceled_at=PERIOD_END, ended_at=PERIOD_END
            )
            await manage_subscription_status_change(database, "sub_test_123", "cus_test_123")

        row = await _get_subscription_row(database)
        assert row["status"] == "canceled"
        assert row["canceled_at"] == _naive(PERIOD_END)
        assert row["ended_at"] == _naive(PERIOD_END)
        result = await database.execute(select(subscriptions))
        assert len(result.rows) == 1

    async def test_missing_mapping_fails_before_stripe_call(self, database: Database):
        with (
            patch(f"{SERVICE}.get_subscription", new_callable=AsyncMock) as get_sub,
            pytest.raises(MissingCustomerMappingError),
        ):
            await manage_subscription_status_change(database, "sub_test_123", "cus_unknown")

        get_sub.assert_not_awaited()
        assert await _get_subscription_row(database) is None

    async def test_copies_billing_details_on_create(
        self, database: Database, mapped_user: uuid.UUID
    ):
        payment_method = _StripeObj(id="pm_123", type="card")
        with (
            patch(
                f"{SERVICE}.get_subscription",
                new_callable=AsyncMock,
                return_value=_make_stripe_sub(default_payment_method=payment_method),
            ),
            patch(f"{SERVICE}.copy_billing_details_to_customer", new_callable=AsyncMock) as copy,
        ):
            await manage_subscription_status_change(
                database, "sub_test_123", "cus_test_123", create_action=True
            )

        copy.assert_awaited_once_with(database, mapped_user, payment_method)

    async def test_no_billing_copy_on_update(self, database: Database, mapped_user: uuid.UUID):
        payment_method = _StripeObj(id="pm_123", type="card")
        with (
            patch(
                f"{SERVICE}.get_subscription",
                new_callable=AsyncMock,
                return_value=_make_stripe_sub(default_payment_method=payment_method),
            ),
            patch(f"{SERVICE}.copy_billing_details_to_customer", new_callable=AsyncMock) as copy,
        ):
            await manage_subscription_status_change(database, "sub_test_123", "cus_test_123")

        copy.assert_not_awaited()

    async def test_unexpanded_payment_method_is_skipped(
        self, database: Database, mapped_user: uuid.UUID
    ):
        with (
            patch(
                f"{SERVICE}.get_subscription",
                new_callable=AsyncMock,
                return_value=_make_stripe_sub(default_payment_method="pm_123"),
            ),
            patch(f"{SERVICE}.copy_billing_details_to_customer", new_callable=AsyncMock) as copy,
        ):
            await manage_subscription_status_change(
                database, "sub_test_123", "cus_test_123", create_action=True
            )

        copy.assert_not_awaited()
        assert await _get_subscription_row(database) is not None

    async def test_stripe_objects_end_to_end(
        self, database: Database, mapped_user: uuid.UUID
    ):
        payment_method = stripe.PaymentMethod.construct_from(
            {
                "id": "pm_123",
                "object": "payment_method",
                "type": "card",
                "customer": "cus_test_123",
                "billing_details": {
                    "name": "Jane Doe",
                    "phone": "+62 361 000000",
                    "email": None,
                    "address": {"line1": "1 Main St", "city": "Denpasar", "country": "ID"},
                },
                "card": {"brand": "visa", "last4": "4242"},
            },
            "sk_test_123",
        )
        stripe_sub = _construct_stripe_sub(default_payment_method=payment_method)
        with (
            patch(f"{SERVICE}.get_subscription", new_callable=AsyncMock, return_value=stripe_sub),
            patch(
                "paysync.services.billing_details_service.update_customer_billing_details",
                new_callable=AsyncMock,
            ) as update_customer,
        ):
            await manage_subscription_status_change(
                database, "sub_test_123", "cus_test_123", create_action=True
            )

        row = await _get_subscription_row(database)
        assert row["metadata"] == {"plan": "pro"}
        assert row["quantity"] == 2
        update_customer.assert_awaited_once_with(
            "cus_test_123",
            "Jane Doe",
            "+62 361 000000",
            {"line1": "1 Main St", "city": "Denpasar", "country": "ID"},
        )
