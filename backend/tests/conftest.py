"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from api.plaid import _get_plaid_client
from api.sync import get_sync_service
from api.webhooks import get_webhook_verifier
from services.rate_limiter import RateLimiter, get_rate_limiter
from services.sync_service import SyncService
from services.webhook_verifier import PlaidWebhookVerifier
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    OWNER_ID,
    category,
    checking_account,
    credit_account,
    other_category,
    plaid_item,
)
from tests.fixtures.mocks import MockPlaidClient, SAMPLE_PLAID_ACCOUNTS, WebhookSigner


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="webhook_signer")
def webhook_signer_fixture():
    """Signing key standing in for Plaid's webhook key."""
    return WebhookSigner()


@pytest.fixture(name="mock_plaid_client")
def mock_plaid_client_fixture(webhook_signer):
    """Create a mock Plaid client with two sample accounts."""
    return MockPlaidClient(
        accounts=SAMPLE_PLAID_ACCOUNTS,
        webhook_keys={webhook_signer.kid: webhook_signer.public_jwk},
    )


@pytest.fixture(name="rate_limiter")
def rate_limiter_fixture():
    """A fresh limiter so cooldowns never leak between tests."""
    return RateLimiter()


def _install_overrides(db, plaid_client, rate_limiter):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_sync_service():
        return SyncService(plaid_client=plaid_client, rate_limiter=rate_limiter)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_service] = override_get_sync_service
    app.dependency_overrides[_get_plaid_client] = lambda: plaid_client
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_webhook_verifier] = lambda: PlaidWebhookVerifier(plaid_client)


@pytest.fixture(name="client")
def client_fixture(db, mock_plaid_client, rate_limiter):
    """Create a test client authenticated as OWNER_ID."""
    _install_overrides(db, mock_plaid_client, rate_limiter)
    client = TestClient(app, headers={"X-User-Id": OWNER_ID})
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="anonymous_client")
def anonymous_client_fixture(db, mock_plaid_client, rate_limiter):
    """Create a test client with no authenticated user."""
    _install_overrides(db, mock_plaid_client, rate_limiter)
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
