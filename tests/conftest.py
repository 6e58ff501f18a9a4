"""Shared test fixtures for the telehealth billing test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, fake Stripe keys)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: an admin account and one customer
- admin_headers: Authorization header carrying a valid admin token
- post_webhook: POSTs an event to /api/webhooks/stripe with a real signature
"""

import hashlib
import hmac
import json
import time

import pytest
from werkzeug.security import generate_password_hash

from telehealth import create_app
from telehealth.extensions import db as _db
from telehealth.models.customer import Customer
from telehealth.services.auth_service import issue_token

WEBHOOK_SECRET = "whsec_test_fake"


def _sign(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a Stripe-Signature header value for `payload`."""
    timestamp = int(timestamp or time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after.

    No app context is held open during the test, so every request gets
    its own context (and its own session and `g`), as it would in
    production. Tests open `app.app_context()` to inspect the database.
    """
    with app.app_context():
        _db.create_all()
    yield _db
    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed the database with an admin account and one customer.

    Returns plain IDs so tests can use them outside the seeding context.
    """
    with app.app_context():
        admin = Customer(
            email="admin@test.example.com",
            first_name="Admin",
            role="admin",
            password_hash=generate_password_hash("admin123"),
        )
        customer = Customer(
            id=42,
            email="pat@example.com",
            first_name="Pat",
            last_name="Lee",
            role="customer",
        )
        _db.session.add_all([admin, customer])
        _db.session.commit()

        return {
            "admin_id": admin.id,
            "admin_email": admin.email,
            "customer_id": customer.id,
            "customer_email": customer.email,
        }


@pytest.fixture
def admin_headers(app, seed_data):
    """Authorization header for the seeded admin."""
    with app.app_context():
        admin = _db.session.get(Customer, seed_data["admin_id"])
        token = issue_token(admin)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers(app, seed_data):
    """Authorization header for the seeded (non-admin) customer."""
    with app.app_context():
        customer = _db.session.get(Customer, seed_data["customer_id"])
        token = issue_token(customer)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sign_payload():
    """Return the Stripe-Signature builder for hand-made requests."""
    return _sign


@pytest.fixture
def post_webhook(client):
    """Return a function that delivers a signed event to the webhook endpoint."""

    def _post(event, secret=WEBHOOK_SECRET):
        payload = json.dumps(event)
        return client.post(
            "/api/webhooks/stripe",
            data=payload,
            content_type="application/json",
            headers={"Stripe-Signature": _sign(payload, secret)},
        )

    return _post
