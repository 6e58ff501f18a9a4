"""Tests for the flask CLI commands."""

from unittest.mock import patch

import pytest
import stripe
from werkzeug.security import check_password_hash

from telehealth.models.customer import Customer
from telehealth.models.webhook_event import WebhookEvent
from telehealth.extensions import db


@pytest.fixture(autouse=True)
def keep_debug_flag(app):
    """The CLI runner resets app.debug from the environment; restore it."""
    debug = app.debug
    yield
    app.debug = debug


class TestSeedAdmin:
    def test_creates_admin(self, app):
        result = app.test_cli_runner().invoke(
            args=["seed-admin", "--email", "Boss@Example.com", "--password", "s3cret"]
        )

        assert result.exit_code == 0
        assert "Created admin user: boss@example.com" in result.output
        with app.app_context():
            admin = Customer.query.filter_by(email="boss@example.com").one()
            assert admin.role == "admin"
            assert check_password_hash(admin.password_hash, "s3cret")

    def test_resets_existing_password(self, app, seed_data):
        result = app.test_cli_runner().invoke(
            args=["seed-admin", "--email", seed_data["admin_email"],
                  "--password", "new-pass"]
        )

        assert result.exit_code == 0
        with app.app_context():
            admin = Customer.query.filter_by(email=seed_data["admin_email"]).one()
            assert check_password_hash(admin.password_hash, "new-pass")

    def test_requires_credentials(self, app):
        result = app.test_cli_runner().invoke(args=["seed-admin"])

        assert result.exit_code != 0
        assert "ADMIN_EMAIL" in result.output


class TestReplayWebhooks:
    @patch("telehealth.services.stripe_service.stripe.Subscription.retrieve")
    def test_replays_unprocessed(self, mock_retrieve, app):
        with app.app_context():
            db.session.add(WebhookEvent(
                stripe_event_id="evt_stuck",
                event_type="customer.created",
                payload={"id": "evt_stuck", "type": "customer.created",
                         "data": {"object": {}}},
                processed=False,
            ))
            db.session.commit()

        result = app.test_cli_runner().invoke(args=["replay-webhooks"])

        assert result.exit_code == 0
        assert "processed=1" in result.output
        with app.app_context():
            assert WebhookEvent.query.one().processed is True


class TestVerifyStripePrices:
    @patch("stripe.Price.retrieve")
    def test_checks_each_configured_price(self, mock_retrieve, app):
        mock_retrieve.return_value = stripe.Price.construct_from(
            {"id": "price_x", "active": True, "livemode": False, "unit_amount": 29900},
            "sk_test",
        )

        result = app.test_cli_runner().invoke(args=["verify-stripe-prices"])

        assert result.exit_code == 0
        assert "Stripe key mode: Test" in result.output
        assert "tirzepatide_6month: (not set)" in result.output
        assert "active=True, livemode=False, amount=$299.00" in result.output
        assert mock_retrieve.call_count == 5
