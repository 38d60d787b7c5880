"""Shared pytest fixtures for test suite"""
import hashlib
import hmac
import json
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Generator

# Settings are read at import time; point the app at throwaway backends first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test123"
os.environ["RESEND_API_KEY"] = "re_test_123"
os.environ["SITE_URL"] = "https://blog.example.com"
os.environ["BACKEND_URL"] = "https://api.example.com"
os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = ""

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from paywall.api.dependencies import get_notifier, get_payment_provider
from paywall.core.errors import DeliveryError
from paywall.db.payment_store import PaymentRecordStore
from paywall.db.redis import get_redis
from paywall.db.session import get_db
from paywall.db.token_store import TokenStore
from paywall.main import app
from paywall.models import Base
from paywall.services.email.base import BaseNotifier
from paywall.services.payments.stripe_provider import StripePaymentProvider
from paywall.services.token_service import TokenService
from paywall.services.webhook_service import PaymentWebhookProcessor

TEST_WEBHOOK_SECRET = "whsec_test123"

# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FrozenClock:
    """Controllable clock for TokenService"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier(BaseNotifier):
    """Notifier that keeps sent messages in memory, or fails on demand"""

    name = "recording"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        if self.fail:
            raise DeliveryError("provider rejected the message")
        self.sent.append({
            "to": to_email,
            "subject": subject,
            "html": html_body,
            "text": text_body,
        })


def sign_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header for ``payload``"""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(
    session_id: str = "cs_test_123",
    email: str = "reader@example.com",
    article_slug: str = "go-basics",
    payment_status: str = "paid",
    event_type: str = "checkout.session.completed"
) -> bytes:
    """Raw body of a Checkout webhook event"""
    metadata = {"articleSlug": article_slug} if article_slug else {}
    event = {
        "id": f"evt_{session_id}",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_status": payment_status,
                "customer_details": {"email": email} if email else None,
                "customer_email": None,
                "metadata": metadata,
            }
        },
    }
    return json.dumps(event).encode("utf-8")


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def fake_redis():
    """In-memory Redis stand-in"""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(scope="function")
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="function")
def token_store(fake_redis) -> TokenStore:
    return TokenStore(fake_redis)


@pytest.fixture(scope="function")
def token_service(token_store, clock) -> TokenService:
    return TokenService(token_store, clock=clock)


@pytest.fixture(scope="function")
def payment_store(db_session) -> PaymentRecordStore:
    return PaymentRecordStore(db_session)


@pytest.fixture(scope="function")
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="function")
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture(scope="function")
def stripe_provider() -> StripePaymentProvider:
    return StripePaymentProvider(api_key="sk_test_123")


@pytest.fixture(scope="function")
def sign():
    """Stripe-Signature header builder"""
    return sign_payload


@pytest.fixture(scope="function")
def paid_event():
    """Checkout webhook body builder"""
    return checkout_completed_event


@pytest.fixture(scope="function")
def make_processor(stripe_provider, token_service, db_session, notifier, fake_redis):
    """Build a webhook processor wired to the test stores (a new one per delivery)"""

    def _make(notifier_override=None, webhook_secret=TEST_WEBHOOK_SECRET):
        return PaymentWebhookProcessor(
            stripe_provider,
            token_service,
            db_session,
            notifier_override or notifier,
            fake_redis,
            webhook_secret=webhook_secret
        )

    return _make


@pytest.fixture(scope="function")
def client(db_session, fake_redis, notifier, stripe_provider) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database, fake Redis and a recording notifier.

    Used without a ``with`` block so the lifespan (OTEL, real DB/Redis checks) does not run.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Closed by the db_session fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_provider] = lambda: stripe_provider

    try:
        yield TestClient(app)
    finally:
        # Cleanup - always clear overrides
        app.dependency_overrides.clear()
