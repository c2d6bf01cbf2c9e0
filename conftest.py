"""
Pytest Configuration
Shared fixtures: in-memory database, API client, seeded users and Stripe helpers
"""

import hashlib
import hmac
import json
import os
import time
from datetime import date, time as dtime, timedelta

# Must be set before studio_api builds its default engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEVELOPMENT_MODE"] = "true"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
for _name in ("STRIPE_SECRET_KEY", "RESEND_API_KEY", "TENANT_BASE_DOMAIN", "TENANT_DATABASE_URL_TEMPLATE", "AUTO_MIGRATE"):
    os.environ.pop(_name, None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studio_api.dependencies import get_db_session, get_stripe_gateway
from studio_api.main import app
from studio_api.models.orm_models import Base, Client, StudioClass, Trainer
from studio_api.services.auth_service import AuthService
from studio_api.services.stripe_gateway import StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "secret123"


# Test markers
def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


collect_ignore_glob = [
    "*/alembic/*",
    "*/venv/*",
    "*/__pycache__/*",
]


# Fixtures
@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def stripe_gateway(mocker):
    """Gateway with a webhook secret and every outbound Stripe call mocked."""
    gateway = StripeGateway(api_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET)
    mocker.patch.object(
        gateway,
        "create_checkout_session",
        return_value={"id": "cs_test_123", "url": "https://checkout.stripe.test/cs_test_123"},
    )
    mocker.patch.object(
        gateway,
        "create_invoice",
        return_value={
            "customer_id": "cus_test_1",
            "invoice_id": "in_test_1",
            "hosted_invoice_url": "https://invoice.stripe.test/in_test_1",
            "status": "open",
        },
    )
    return gateway


@pytest.fixture
def api(session_factory, stripe_gateway):
    def _override_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = _override_session
    app.dependency_overrides[get_stripe_gateway] = lambda: stripe_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# --- Seed helpers ---


def create_user(session, email, role, *, first_name="Test", last_name="User"):
    user = AuthService(session).create_user(
        email=email, password=PASSWORD, role=role, first_name=first_name, last_name=last_name
    )
    session.commit()
    return user


@pytest.fixture
def admin_user(db_session):
    return create_user(db_session, "admin@studio.test", "admin", first_name="Ada")


@pytest.fixture
def trainer_user(db_session):
    user = create_user(db_session, "trainer@studio.test", "trainer", first_name="Tom", last_name="Trainer")
    db_session.add(
        Trainer(user_id=user.id, first_name="Tom", last_name="Trainer", email=user.email, status="active")
    )
    db_session.commit()
    return user


@pytest.fixture
def client_user(db_session):
    user = create_user(db_session, "client@studio.test", "client", first_name="Cleo", last_name="Client")
    return user


@pytest.fixture
def client_profile(db_session, client_user):
    profile = Client(
        user_id=client_user.id,
        first_name="Cleo",
        last_name="Client",
        email=client_user.email,
        status="confirmed",
    )
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture
def make_class(db_session):
    def _make(**overrides):
        values = dict(
            name="Morning Flow",
            class_date=date.today() + timedelta(days=1),
            start_time=dtime(9, 0),
            end_time=dtime(10, 0),
            max_capacity=10,
            current_enrollment=0,
            price=25,
            status="scheduled",
        )
        values.update(overrides)
        c = StudioClass(**values)
        db_session.add(c)
        db_session.commit()
        return c

    return _make


@pytest.fixture
def login(api):
    def _login(email, password=PASSWORD):
        resp = api.post("/api/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _login


# Test utilities
def stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a Stripe-Signature header the SDK will accept."""
    ts = int(timestamp if timestamp is not None else time.time())
    signed = f"{ts}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def stripe_event(event_id: str, event_type: str, obj: dict) -> bytes:
    return json.dumps(
        {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
    ).encode("utf-8")


@pytest.fixture
def post_webhook(api):
    def _post(event_id, event_type, obj, *, signature=None):
        payload = stripe_event(event_id, event_type, obj)
        headers = {"Content-Type": "application/json"}
        headers["Stripe-Signature"] = signature if signature is not None else stripe_signature(payload)
        return api.post("/api/stripe/webhook", content=payload, headers=headers)

    return _post
