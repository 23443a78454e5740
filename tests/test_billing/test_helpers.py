"""Tests for redirect URL, trial-end and Stripe object helpers."""

import time

import pytest
import stripe

from paysync.billing.helpers import calculate_trial_end_unix_timestamp, get_url, to_plain
from paysync.config import settings


class TestGetUrl:
    def test_base_url(self):
        assert get_url() == "https://billing.example.com"

    @pytest.mark.parametrize("path", ["account", "/account", "//account"])
    def test_joins_path(self, path):
        assert get_url(path) == "https://billing.example.com/account"

    def test_trailing_slash_and_missing_scheme(self, monkeypatch):
        monkeypatch.setattr(settings, "site_url", "shop.example.com/")
        assert get_url("/account") == "https://shop.example.com/account"

    def test_keeps_http_scheme(self, monkeypatch):
        monkeypatch.setattr(settings, "site_url", "http://localhost:3000")
        assert get_url() == "http://localhost:3000"

    def test_falls_back_to_localhost(self, monkeypatch):
        monkeypatch.setattr(settings, "site_url", "")
        assert get_url("pricing") == "http://localhost:3000/pricing"


class TestTrialEnd:
    @pytest.mark.parametrize("days", [None, 0, 1])
    def test_short_or_missing_trial(self, days):
        assert calculate_trial_end_unix_timestamp(days) is None

    def test_adds_one_extra_day(self):
        before = int(time.time())
        trial_end = calculate_trial_end_unix_timestamp(7)
        after = int(time.time())

        day = 24 * 60 * 60
        assert before + 8 * day <= trial_end <= after + 8 * day


class TestToPlain:
    def test_unwraps_nested_stripe_objects(self):
        pm = stripe.PaymentMethod.construct_from(
            {
                "id": "pm_123",
                "object": "payment_method",
                "billing_details": {"address": {"city": "Denpasar", "line2": None}},
            },
            "sk_test_123",
        )

        plain = to_plain({"details": pm.billing_details, "tags": [pm.billing_details.address]})

        assert plain == {
            "details": {"address": {"city": "Denpasar", "line2": None}},
            "tags": [{"city": "Denpasar", "line2": None}],
        }
        assert type(plain["details"]["address"]) is dict
        assert type(plain["tags"][0]) is dict

    def test_scalars_pass_through(self):
        assert to_plain(None) is None
        assert to_plain("pm_123") == "pm_123"
