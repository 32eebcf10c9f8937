import hashlib
import hmac
import json
import os
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

# Config is read at import time
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("SENTRY_ENABLED", "false")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("PAYPAL_CLIENT_ID", "paypal-client-id")
os.environ.setdefault("PAYPAL_CLIENT_SECRET", "paypal-client-secret")

from fastapi.testclient import TestClient  # noqa: E402

from src.db.record_store import RecordStore  # noqa: E402
from src.main import create_app  # noqa: E402
from src.routes.payments import (  # noqa: E402
    get_paypal_client,
    get_reconciler,
    get_record_store,
    get_stripe_service,
    get_webhook_settings,
)
from src.services.reconciler import EventReconciler  # noqa: E402
from src.services.webhook_verification import WebhookSettings  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"


def sign_stripe_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a Stripe-Signature header the way Stripe signs deliveries."""
    timestamp = int(timestamp if timestamp is not None else time.time())
    signed = f"{timestamp}.{payload}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps(
        {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
    )


@pytest.fixture
def store():
    return RecordStore()


@pytest.fixture
def reconciler(store):
    return EventReconciler(store)


@pytest.fixture
def webhook_settings():
    return WebhookSettings(secret=WEBHOOK_SECRET, allow_unverified=False)


@pytest.fixture
def mock_stripe_service():
    service = MagicMock()
    service.create_customer.return_value = "cus_test_1"
    return service


@pytest.fixture
def mock_paypal_client():
    client = MagicMock()
    client.create_order = AsyncMock()
    client.capture_order = AsyncMock()
    return client


@pytest.fixture
def app(store, reconciler, webhook_settings, mock_stripe_service, mock_paypal_client):
    app = create_app()
    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    app.dependency_overrides[get_webhook_settings] = lambda: webhook_settings
    app.dependency_overrides[get_stripe_service] = lambda: mock_stripe_service
    app.dependency_overrides[get_paypal_client] = lambda: mock_paypal_client
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def sign_payload():
    return sign_stripe_payload


@pytest.fixture
def make_stripe_event():
    return stripe_event
