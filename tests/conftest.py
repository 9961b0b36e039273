"""
Shared fixtures: in-memory SQLite, test settings and a fake Stripe gateway.
"""
import hashlib
import hmac
import os
import time
from datetime import datetime

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import atsscanner.db.models  # noqa: F401
from atsscanner.api.dependencies import get_billing_gateway
from atsscanner.core.config import Settings, get_settings
from atsscanner.core.exceptions import ExternalServiceFailure
from atsscanner.core.plan_catalog import seed_membership_plans
from atsscanner.core.security import create_access_token, hash_password
from atsscanner.db.base import Base
from atsscanner.db.models.user import User
from atsscanner.db.session import get_db
from atsscanner.main import app

WEBHOOK_SECRET = "whsec_test_secret"

# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeGateway:
    """Stands in for StripeGateway; records calls and can be told to fail."""

    def __init__(self):
        self.fail_cancel = False
        self.cancel_result = True
        self.cancelled = []
        self.customers = []
        self.subscriptions = []
        self.subscription_status = "active"
        self._idempotent_responses = {}

    def create_customer(self, email, name, user_id):
        customer_id = f"cus_test_{user_id}"
        self.customers.append(customer_id)
        return customer_id

    def create_payment_intent(self, user_id, amount_cents, currency="usd"):
        return {"id": "pi_test_1", "client_secret": "pi_test_1_secret_abc", "amount": amount_cents}

    def create_subscription(self, customer_id, price_id, metadata, idempotency_key, description=None):
        # Stripe replays the first response for a repeated idempotency key
        if idempotency_key in self._idempotent_responses:
            return self._idempotent_responses[idempotency_key]

        subscription_id = f"sub_test_{len(self.subscriptions) + 1}"
        self.subscriptions.append({
            "id": subscription_id,
            "customer": customer_id,
            "price": price_id,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        })
        response = {"id": subscription_id, "status": self.subscription_status}
        self._idempotent_responses[idempotency_key] = response
        return response

    def cancel_subscription(self, subscription_id):
        if self.fail_cancel:
            raise ExternalServiceFailure("Failed to cancel subscription: No such subscription")
        self.cancelled.append(subscription_id)
        return self.cancel_result

    def list_payment_methods(self, customer_id):
        return [{"id": "pm_test_1", "brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}]


@pytest.fixture
def settings():
    return Settings(
        SECRET_KEY=os.environ["SECRET_KEY"],
        DATABASE_URL=TEST_DATABASE_URL,
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        STRIPE_PRICE_ID_BASIC="price_basic_test",
        STRIPE_PRICE_ID_PREMIUM="price_premium_test",
        STRIPE_PRICE_ID_ENTERPRISE="price_enterprise_test",
    )


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def seeded_db(db, settings):
    seed_membership_plans(db, settings)
    return db


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def client(db, settings, fake_gateway):
    """Test client with database, settings and Stripe overridden."""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_billing_gateway] = lambda: fake_gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def test_user(db):
    """Create a test user."""
    user = User(
        username="testuser",
        email="test@example.com",
        password_hash=hash_password("testpass123"),
        scan_count=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user):
    token = create_access_token({"sub": test_user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def now():
    return datetime(2026, 3, 15, 12, 0, 0)


@pytest.fixture
def sign_payload():
    """Build a Stripe-Signature header for a payload using Stripe's v1 scheme."""
    def _sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
        timestamp = timestamp or int(time.time())
        signed_payload = f"{timestamp}.{payload}"
        signature = hmac.new(secret.encode("utf-8"), signed_payload.encode("utf-8"), hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={signature}"
    return _sign
