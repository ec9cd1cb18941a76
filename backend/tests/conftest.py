"""
Test configuration and fixtures for Willcraft.

Repositories run against a temporary SQLite database through aiosqlite;
Stripe is always mocked. Auth uses HS256 tokens signed with a test
secret, configured here before the application is imported.
"""

import os
import time
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest

from tests.factories import (
    ESSENTIAL_PRICE,
    OTHER_USER_ID,
    TEST_ISSUER,
    TEST_JWT_SECRET,
    UNLIMITED_PRICE,
    USER_ID,
    FakeClock,
)

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ["AUTH_JWT_SECRET"] = TEST_JWT_SECRET
os.environ["AUTH_ISSUER"] = TEST_ISSUER
os.environ["AUTH_JWKS_URL"] = ""

from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from willcraft.config.settings import Settings  # noqa: E402
from willcraft.infrastructure.cache import TTLCache  # noqa: E402
from willcraft.infrastructure.db import models  # noqa: E402, F401
from willcraft.infrastructure.db.database import (  # noqa: E402
    create_engine_for_url,
    create_session_factory,
)
from willcraft.infrastructure.db.repositories import (  # noqa: E402
    SubscriptionRepository,
    UserRepository,
    WebhookEventRepository,
    WillRepository,
)
from willcraft.infrastructure.services.subscription_mirror import SubscriptionMirror  # noqa: E402
from willcraft.infrastructure.services.webhook_applier import WebhookEventApplier  # noqa: E402
from willcraft.infrastructure.services.will_service import WillService  # noqa: E402


# =============================================================================
# Settings / Auth Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="testing",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret="whsec_dummy",
        stripe_price_id_essential=ESSENTIAL_PRICE,
        stripe_price_id_unlimited=UNLIMITED_PRICE,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        will_list_limit=50,
        will_list_cache_ttl_seconds=120,
        section_update_max_attempts=5,
    )


@pytest.fixture
def make_token():
    """Factory for HS256 tokens accepted by the identity resolver."""
    def _make(
        sub: str = USER_ID,
        email: Optional[str] = "testator@example.com",
        expires_in: int = 3600,
        secret: str = TEST_JWT_SECRET,
        **claims,
    ) -> str:
        now = int(time.time())
        payload = {
            "sub": sub,
            "aud": "authenticated",
            "iss": TEST_ISSUER,
            "iat": now,
            "exp": now + expires_in,
            **claims,
        }
        if email:
            payload["email"] = email
        return jwt.encode(payload, secret, algorithm="HS256")
    return _make


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def other_auth_headers(make_token):
    token = make_token(sub=OTHER_USER_ID, email="someone.else@example.com")
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'willcraft.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def user_repo(session_factory) -> UserRepository:
    return UserRepository(session_factory)


@pytest.fixture
def subscription_repo(session_factory) -> SubscriptionRepository:
    return SubscriptionRepository(session_factory)


@pytest.fixture
def will_repo(session_factory) -> WillRepository:
    return WillRepository(session_factory, max_attempts=5)


@pytest.fixture
def event_repo(session_factory) -> WebhookEventRepository:
    return WebhookEventRepository(session_factory)


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def mock_stripe_service():
    """Stripe service double; every network call is an AsyncMock."""
    mock = MagicMock()
    mock.is_configured = True
    mock.webhooks_configured = True
    mock.get_subscription = AsyncMock()
    mock.cancel_at_period_end = AsyncMock()
    mock.create_customer = AsyncMock()
    mock.create_checkout_session = AsyncMock()
    mock.create_portal_session = AsyncMock()
    return mock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def list_cache(clock) -> TTLCache:
    return TTLCache(ttl_seconds=120, clock=clock)


@pytest.fixture
def mirror(subscription_repo, mock_stripe_service, test_settings) -> SubscriptionMirror:
    return SubscriptionMirror(
        subscription_repo=subscription_repo,
        stripe_service=mock_stripe_service,
        settings=test_settings,
    )


@pytest.fixture
def will_service(will_repo, mirror, list_cache, test_settings) -> WillService:
    return WillService(
        will_repo=will_repo,
        mirror=mirror,
        list_cache=list_cache,
        settings=test_settings,
    )


@pytest.fixture
def applier(mock_stripe_service, mirror, event_repo, user_repo) -> WebhookEventApplier:
    return WebhookEventApplier(
        stripe_service=mock_stripe_service,
        mirror=mirror,
        event_repo=event_repo,
        user_repo=user_repo,
    )


@pytest.fixture
async def user(user_repo):
    """Provisioned default user (essential plan, inactive)."""
    return await user_repo.ensure(USER_ID, "testator@example.com")


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application."""
    from willcraft.main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Synchronous test client for routes that need no database."""
    return TestClient(app)


@pytest.fixture
async def api(
    app,
    user_repo,
    subscription_repo,
    will_repo,
    event_repo,
    list_cache,
    mirror,
    will_service,
    applier,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async client against the app wired to the SQLite-backed services.

    Runs on the test's event loop so the aiosqlite engine can be shared.
    """
    from willcraft.infrastructure.cache import get_will_list_cache
    from willcraft.infrastructure.db.repositories import (
        get_subscription_repository,
        get_user_repository,
        get_webhook_event_repository,
        get_will_repository,
    )
    from willcraft.infrastructure.services.subscription_mirror import get_subscription_mirror
    from willcraft.infrastructure.services.webhook_applier import get_webhook_applier
    from willcraft.infrastructure.services.will_service import get_will_service

    app.dependency_overrides.update({
        get_user_repository: lambda: user_repo,
        get_subscription_repository: lambda: subscription_repo,
        get_will_repository: lambda: will_repo,
        get_webhook_event_repository: lambda: event_repo,
        get_will_list_cache: lambda: list_cache,
        get_subscription_mirror: lambda: mirror,
        get_will_service: lambda: will_service,
        get_webhook_applier: lambda: applier,
    })

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def sample_testator():
    return {
        "firstName": "Jane",
        "lastName": "Doe",
        "dateOfBirth": "1970-04-12",
        "address": {
            "street": "12 Elm St",
            "city": "Austin",
            "state": "TX",
            "zipCode": "78701",
        },
        "email": "jane@example.com",
    }


@pytest.fixture
def sample_assets():
    return {
        "realProperty": [
            {
                "id": "prop-1",
                "type": "house",
                "description": "Family home",
                "address": {
                    "street": "12 Elm St",
                    "city": "Austin",
                    "state": "TX",
                    "zipCode": "78701",
                },
                "estimatedValue": 450000,
            }
        ],
        "personalProperty": [
            {
                "id": "asset-1",
                "type": "bank_account",
                "description": "Checking account",
            }
        ],
    }


@pytest.fixture
def sample_family():
    return {
        "spouse": {"firstName": "John", "lastName": "Doe"},
        "children": [
            {"id": "c1", "firstName": "Amy", "lastName": "Doe", "isMinor": True},
        ],
        "pets": [],
    }

