"""URL, trial and Stripe object helpers for checkout, portal and webhooks."""

import time
from typing import Any

import stripe

from paysync.config import settings


def get_url(path: str = "") -> str:
    """Absolute URL on the configured site for ``path``.

    Adds ``https://`` unless the URL already has a scheme, drops trailing
    slashes from the base and leading slashes from the path.
    """
    url = (settings.site_url or "http://localhost:3000").strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"

    path = path.lstrip("/")
    return f"{url}/{path}" if path else url


def calculate_trial_end_unix_timestamp(trial_period_days: int | None) -> int | None:
    """Unix timestamp for the end of a trial, or None for trials under two days.

    One extra day is added so the customer gets the full advertised trial.
    """
    if trial_period_days is None or trial_period_days < 2:
        return None
    return int(time.time()) + (trial_period_days + 1) * 24 * 60 * 60


def to_plain(value: Any) -> Any:
    """Plain dict/list copy of a Stripe object, safe for a JSON column.

    A ``StripeObject`` is not a mapping, so ``dict(obj)`` raises;
    ``to_dict()`` unwraps it together with any nested objects.
    """
    if isinstance(value, stripe.StripeObject):
        return value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value
