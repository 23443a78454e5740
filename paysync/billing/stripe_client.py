"""Async Stripe API wrapper for PaySync."""

import logging
from typing import Any

import stripe
from stripe import StripeClient

from paysync.config import settings
from paysync.errors import WebhookVerificationError

logger = logging.getLogger(__name__)


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


async def retrieve_customer(customer_id: str) -> stripe.Customer:
    """Retrieve a Stripe customer by ID."""
    client = get_stripe_client()
    return await client.v1.customers.retrieve_async(customer_id)


async def find_customer_by_email(email: str) -> stripe.Customer | None:
    """Return the first Stripe customer registered with ``email``, if any."""
    client = get_stripe_client()
    customers = await client.v1.customers.list_async(params={"email": email, "limit": 1})
    return customers.data[0] if customers.data else None


async def create_customer(email: str, user_id: str) -> stripe.Customer:
    """Create a Stripe customer linked to a local user."""
    client = get_stripe_client()
    logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
    customer = await client.v1.customers.create_async(
        params={
            "email": email,
            "metadata": {"user_id": user_id},
        }
    )
    logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
    return customer


async def update_customer_billing_details(
    customer_id: str, name: str, phone: str, address: dict[str, Any]
) -> stripe.Customer:
    """Copy name, phone and address onto the Stripe customer."""
    client = get_stripe_client()
    return await client.v1.customers.update_async(
        customer_id,
        params={"name": name, "phone": phone, "address": address},
    )


async def get_subscription(subscription_id: str) -> stripe.Subscription:
    """Retrieve a Stripe subscription with its default payment method expanded."""
    client = get_stripe_client()
    return await client.v1.subscriptions.retrieve_async(
        subscription_id,
        params={"expand": ["default_payment_method"]},
    )


async def create_checkout_session(params: dict[str, Any]) -> stripe.checkout.Session:
    """Create a Stripe Checkout Session from prepared parameters."""
    client = get_stripe_client()
    logger.info(
        "Creating %s checkout session for customer %s",
        params.get("mode"),
        params.get("customer"),
    )
    return await client.v1.checkout.sessions.create_async(params=params)


async def create_portal_session(
    customer_id: str, return_url: str
) -> stripe.billing_portal.Session:
    """Create a Stripe Customer Portal session for subscription management."""
    client = get_stripe_client()
    logger.info("Creating portal session for customer %s", customer_id)
    return await client.v1.billing_portal.sessions.create_async(
        params={
            "customer": customer_id,
            "return_url": return_url,
        }
    )


def construct_webhook_event(payload: bytes, sig_header: str | None) -> stripe.Event:
    """Verify the signature header and construct the Stripe event (synchronous).

    Raises:
        WebhookVerificationError: if the header or the configured secret is missing.
        stripe.SignatureVerificationError: if the signature does not match.
        ValueError: if the payload is not valid JSON.
    """
    secret = settings.stripe_webhook_secret
    if not sig_header or not secret:
        raise WebhookVerificationError("Webhook secret not found.")
    return stripe.Webhook.construct_event(payload, sig_header, secret)
