"""Shared test configuration and fixtures.

Each test gets its own SQLite file database with every table created, so
statements run through the real executor and unit-of-work:
- Foreign keys are enforced (``PRAGMA foreign_keys=ON``), which is what
  makes price-before-product races observable.
- Retry delays are zero so retry paths run instantly.
"""

import hashlib
import hmac
import json
import time
import uuid
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert

import paysync.models  # noqa: F401  (registers every table on Base.metadata)
from paysync.config import settings
from paysync.database import Base, Database, get_database
from paysync.main import app
from paysync.models.user import User
from paysync.retry import RetryPolicy

TEST_WEBHOOK_SECRET = "whsec_test_secret"


# ---------------------------------------------------------------------------
# Settings: webhook secret, Stripe key and zero retry delays for every test
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "stripe_webhook_secret", TEST_WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_paysync")
    monkeypatch.setattr(settings, "price_fk_retry_delay", 0.0)
    monkeypatch.setattr(settings, "site_url", "https://billing.example.com")


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Yield a Database on a fresh SQLite file with all tables created."""
    db = Database.open(
        f"sqlite+aiosqlite:///{tmp_path / 'paysync_test.db'}",
        retry_policy=RetryPolicy(max_retries=3, delay=0.0),
    )
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield db
    finally:
        await db.close()


@pytest_asyncio.fixture
async def client(database: Database) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test database."""

    async def override_get_database() -> Database:
        return database

    app.dependency_overrides[get_database] = override_get_database

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience fixtures: users
# ---------------------------------------------------------------------------


async def create_user(database: Database, email: str | None = None) -> uuid.UUID:
    """Insert a user row directly and return its ID."""
    user_id = uuid.uuid4()
    await database.execute(
        insert(User.__table__).values(
            id=user_id,
            email=email or f"user-{user_id.hex[:8]}@test.com",
            full_name="Test User",
        )
    )
    return user_id


@pytest.fixture
def user_factory(database: Database):
    """Return a coroutine function creating users in the test database."""

    async def _create(email: str | None = None) -> uuid.UUID:
        return await create_user(database, email)

    return _create


@pytest_asyncio.fixture
async def test_user_id(database: Database) -> uuid.UUID:
    return await create_user(database)


# ---------------------------------------------------------------------------
# Webhook signing
# ---------------------------------------------------------------------------


def make_event_payload(
    event_type: str, data_object: dict[str, Any], event_id: str | None = None
) -> bytes:
    """Serialize a Stripe-shaped event body."""
    return json.dumps(
        {
            "id": event_id or f"evt_test_{uuid.uuid4().hex[:8]}",
            "object": "event",
            "type": event_type,
            "data": {"object": data_object},
        }
    ).encode()


def sign_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    """Build a ``Stripe-Signature`` header for ``payload``."""
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def signed_event():
    """Return a factory producing ``(payload, headers)`` for a signed event."""

    def _signed_event(
        event_type: str, data_object: dict[str, Any], secret: str = TEST_WEBHOOK_SECRET
    ) -> tuple[bytes, dict[str, str]]:
        payload = make_event_payload(event_type, data_object)
        return payload, {
            "stripe-signature": sign_payload(payload, secret),
            "content-type": "application/json",
        }

    return _signed_event
