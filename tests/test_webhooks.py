"""Tests for the webhooks blueprint and Stripe event reconciliation.

Covers:
- Webhook signature verification (missing, invalid, wrong secret)
- Idempotent event processing (duplicate deliveries skipped)
- checkout.session.completed handler
- customer.subscription.updated handler (stale events, canceled is terminal)
- customer.subscription.deleted handler (canceled_at set once)
- invoice.paid handler (one order per invoice)
- invoice.payment_failed handler
- Unknown event types (acknowledged and marked processed)
- Failure policy: acknowledged, left unprocessed, repaired on redelivery
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import stripe

from telehealth.extensions import db
from telehealth.models.billing import Order, Subscription
from telehealth.models.customer import Customer
from telehealth.models.webhook_event import WebhookEvent
from telehealth.services import stripe_service

PERIOD_START = 1767225600  # 2026-01-01
PERIOD_END = 1769904000  # 2026-02-01
RETRIEVE = "telehealth.services.stripe_service.stripe.Subscription.retrieve"


def checkout_event(event_id="evt_checkout_001", customer_ref="42",
                   subscription="sub_new", created=1767225600, **metadata):
    meta = {"db_customer_id": customer_ref, "product_type": "semaglutide",
            "plan_type": "monthly"}
    meta.update(metadata)
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "created": created,
        "data": {
            "object": {
                "id": "cs_test_001",
                "mode": "subscription",
                "customer": "cus_new",
                "subscription": subscription,
                "payment_intent": "pi_001",
                "metadata": meta,
                "shipping_details": {
                    "address": {
                        "line1": "1 Main St",
                        "line2": "Apt 2",
                        "city": "Austin",
                        "state": "TX",
                        "postal_code": "78701",
                    }
                },
            }
        },
    }


def stripe_subscription(sub_id="sub_new", status="active", amount=29900):
    """What stripe.Subscription.retrieve returns: a StripeObject, period on the item."""
    return stripe.Subscription.construct_from({
        "id": sub_id,
        "status": status,
        "items": {
            "data": [{
                "price": {"id": "price_sema_monthly_test", "unit_amount": amount},
                "current_period_start": PERIOD_START,
                "current_period_end": PERIOD_END,
            }]
        },
    }, "sk_test")


def subscription_event(event_id, event_type, sub_id="sub_existing",
                       status="active", created=1767312000, **extra):
    obj = {
        "id": sub_id,
        "status": status,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
    }
    obj.update(extra)
    return {"id": event_id, "type": event_type, "created": created,
            "data": {"object": obj}}


def invoice_event(event_id, event_type="invoice.paid", invoice_id="in_001",
                  sub_id="sub_existing", amount=29900, created=1767312000):
    return {
        "id": event_id,
        "type": event_type,
        "created": created,
        "data": {
            "object": {
                "id": invoice_id,
                "subscription": sub_id,
                "payment_intent": "pi_renewal",
                "amount_paid": amount,
                "amount_due": amount,
            }
        },
    }


def make_subscription(app, customer_id, sub_id="sub_existing", status="active",
                      last_event_at=None):
    with app.app_context():
        sub = Subscription(
            customer_id=customer_id,
            stripe_subscription_id=sub_id,
            stripe_price_id="price_sema_monthly_test",
            product_type="semaglutide",
            plan_type="monthly",
            status=status,
            amount_cents=29900,
            last_event_at=last_event_at,
        )
        db.session.add(sub)
        db.session.commit()
        return sub.id


class TestWebhookSignature:
    """Tests for webhook signature validation."""

    def test_missing_signature_returns_400(self, client, app, seed_data):
        """POST without Stripe-Signature -> 400, nothing recorded."""
        resp = client.post(
            "/api/webhooks/stripe",
            data=json.dumps(checkout_event()),
            content_type="application/json",
        )
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Invalid signature"}

        with app.app_context():
            assert WebhookEvent.query.count() == 0

    def test_invalid_signature_returns_400(self, client, app, seed_data):
        """Garbage signature -> 400, nothing recorded."""
        resp = client.post(
            "/api/webhooks/stripe",
            data=json.dumps(checkout_event()),
            content_type="application/json",
            headers={"Stripe-Signature": "t=123,v1=deadbeef"},
        )
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Invalid signature"}

        with app.app_context():
            assert WebhookEvent.query.count() == 0

    def test_wrong_secret_returns_400(self, post_webhook, app, seed_data):
        """Signed with another endpoint's secret -> 400."""
        resp = post_webhook(checkout_event(), secret="whsec_someone_else")
        assert resp.status_code == 400

        with app.app_context():
            assert WebhookEvent.query.count() == 0
            assert Subscription.query.count() == 0

    def test_malformed_body_with_valid_signature_returns_400(self, client, sign_payload,
                                                            seed_data):
        """Correctly signed but not JSON -> 400 Invalid payload."""
        resp = client.post(
            "/api/webhooks/stripe",
            data="not json",
            content_type="application/json",
            headers={"Stripe-Signature": sign_payload("not json")},
        )
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Invalid payload"}


class TestCheckoutCompleted:
    """Tests for checkout.session.completed."""

    @patch(RETRIEVE)
    def test_creates_subscription_and_order(self, mock_retrieve, post_webhook,
                                            app, seed_data):
        """Checkout for customer 42 -> active subscription + one paid order."""
        mock_retrieve.return_value = stripe_subscription()

        resp = post_webhook(checkout_event())
        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        mock_retrieve.assert_called_once_with("sub_new")

        with app.app_context():
            record = WebhookEvent.query.one()
            assert record.processed is True
            assert record.last_error is None

            sub = Subscription.query.filter_by(stripe_subscription_id="sub_new").one()
            assert sub.customer_id == 42
            assert sub.status == "active"
            assert sub.product_type == "semaglutide"
            assert sub.plan_type == "monthly"
            assert sub.amount_cents == 29900
            assert sub.stripe_price_id == "price_sema_monthly_test"
            assert sub.current_period_end.replace(tzinfo=timezone.utc) == datetime(
                2026, 2, 1, tzinfo=timezone.utc
            )

            orders = Order.query.all()
            assert len(orders) == 1
            assert orders[0].status == "paid"
            assert orders[0].amount_cents == 29900
            assert orders[0].stripe_payment_intent_id == "pi_001"
            assert orders[0].stripe_invoice_id is None
            assert orders[0].subscription_id == sub.id

            customer = db.session.get(Customer, 42)
            assert customer.stripe_customer_id == "cus_new"
            assert customer.shipping_street == "1 Main St Apt 2"
            assert customer.shipping_zip == "78701"

            evt = WebhookEvent.query.filter_by(stripe_event_id="evt_checkout_001").one()
            assert evt.processed is True
            assert evt.processed_at is not None

    @patch(RETRIEVE)
    def test_duplicate_delivery_is_skipped(self, mock_retrieve, post_webhook,
                                           app, seed_data):
        """Same event twice -> second is a duplicate, ledger unchanged."""
        mock_retrieve.return_value = stripe_subscription()

        first = post_webhook(checkout_event())
        second = post_webhook(checkout_event())

        assert first.get_json() == {"received": True}
        assert second.status_code == 200
        assert second.get_json() == {"received": True, "duplicate": True}
        assert mock_retrieve.call_count == 1

        with app.app_context():
            assert Subscription.query.count() == 1
            assert Order.query.count() == 1
            assert WebhookEvent.query.count() == 1

    @patch(RETRIEVE)
    def test_new_event_for_same_subscription_upserts(self, mock_retrieve,
                                                    post_webhook, app, seed_data):
        """A second checkout event for the same subscription id -> still one row."""
        mock_retrieve.return_value = stripe_subscription()

        post_webhook(checkout_event(event_id="evt_a"))
        post_webhook(checkout_event(event_id="evt_b", created=1767225700))

        with app.app_context():
            assert Subscription.query.count() == 1
            assert Order.query.count() == 1

    @patch(RETRIEVE)
    def test_existing_stripe_customer_link_is_kept(self, mock_retrieve,
                                                  post_webhook, app, seed_data):
        """stripe_customer_id is write-once."""
        mock_retrieve.return_value = stripe_subscription()
        with app.app_context():
            customer = db.session.get(Customer, 42)
            customer.stripe_customer_id = "cus_original"
            db.session.commit()

        post_webhook(checkout_event())

        with app.app_context():
            assert db.session.get(Customer, 42).stripe_customer_id == "cus_original"
            assert Subscription.query.count() == 1

    @patch(RETRIEVE)
    def test_unknown_customer_ref_is_a_noop(self, mock_retrieve, post_webhook,
                                            app, seed_data):
        """metadata.db_customer_id pointing nowhere -> acknowledged, nothing written."""
        resp = post_webhook(checkout_event(customer_ref="9999"))

        assert resp.status_code == 200
        mock_retrieve.assert_not_called()
        with app.app_context():
            assert Subscription.query.count() == 0
            evt = WebhookEvent.query.one()
            assert evt.processed is True

    @patch(RETRIEVE)
    def test_payment_mode_session_is_ignored(self, mock_retrieve, post_webhook,
                                             app, seed_data):
        event = checkout_event()
        event["data"]["object"]["mode"] = "payment"

        resp = post_webhook(event)

        assert resp.status_code == 200
        mock_retrieve.assert_not_called()
        with app.app_context():
            assert Subscription.query.count() == 0


class TestSubscriptionUpdated:
    """Tests for customer.subscription.updated."""

    def test_updates_status_and_period(self, post_webhook, app, seed_data):
        make_subscription(app, seed_data["customer_id"])

        resp = post_webhook(subscription_event(
            "evt_upd_1", "customer.subscription.updated",
            status="past_due", cancel_at=PERIOD_END,
        ))

        assert resp.status_code == 200
        with app.app_context():
            sub = Subscription.query.one()
            assert sub.status == "past_due"
            assert sub.cancel_at is not None
            assert sub.current_period_start is not None

    def test_unknown_subscription_is_a_noop(self, post_webhook, app, seed_data):
        resp = post_webhook(subscription_event(
            "evt_upd_2", "customer.subscription.updated", sub_id="sub_missing",
        ))

        assert resp.status_code == 200
        with app.app_context():
            assert Subscription.query.count() == 0
            assert WebhookEvent.query.one().processed is True

    def test_stale_event_is_ignored(self, post_webhook, app, seed_data):
        """An event created before the last applied one doesn't roll status back."""
        newest = datetime(2026, 1, 3, tzinfo=timezone.utc)
        make_subscription(app, seed_data["customer_id"], status="active",
                          last_event_at=newest)

        post_webhook(subscription_event(
            "evt_old", "customer.subscription.updated", status="past_due",
            created=int((newest - timedelta(hours=1)).timestamp()),
        ))

        with app.app_context():
            assert Subscription.query.one().status == "active"

    def test_canceled_is_terminal(self, post_webhook, app, seed_data):
        """subscription.updated never moves a canceled row back to active."""
        make_subscription(app, seed_data["customer_id"], status="canceled")

        post_webhook(subscription_event(
            "evt_upd_3", "customer.subscription.updated", status="active",
        ))

        with app.app_context():
            assert Subscription.query.one().status == "canceled"


class TestSubscriptionDeleted:
    """Tests for customer.subscription.deleted."""

    def test_marks_canceled(self, post_webhook, app, seed_data):
        make_subscription(app, seed_data["customer_id"])

        resp = post_webhook(subscription_event(
            "evt_del_1", "customer.subscription.deleted", status="canceled",
        ))

        assert resp.status_code == 200
        with app.app_context():
            sub = Subscription.query.one()
            assert sub.status == "canceled"
            assert sub.canceled_at is not None

    def test_canceled_at_is_set_once(self, post_webhook, app, seed_data):
        """A second deleted event (different id) leaves canceled_at alone."""
        make_subscription(app, seed_data["customer_id"])

        post_webhook(subscription_event(
            "evt_del_1", "customer.subscription.deleted", status="canceled",
        ))
        with app.app_context():
            first_canceled_at = Subscription.query.one().canceled_at

        post_webhook(subscription_event(
            "evt_del_2", "customer.subscription.deleted", status="canceled",
            created=1767398400,
        ))

        with app.app_context():
            sub = Subscription.query.one()
            assert sub.status == "canceled"
            assert sub.canceled_at == first_canceled_at

    def test_deleted_after_canceled_update_sets_canceled_at(self, post_webhook, app,
                                                            seed_data):
        """updated(status=canceled) then deleted still stamps canceled_at."""
        make_subscription(app, seed_data["customer_id"])

        post_webhook(subscription_event(
            "evt_upd_cancel", "customer.subscription.updated", status="canceled",
        ))
        with app.app_context():
            sub = Subscription.query.one()
            assert sub.status == "canceled"
            assert sub.canceled_at is None

        resp = post_webhook(subscription_event(
            "evt_del_1", "customer.subscription.deleted", status="canceled",
            created=1767398400,
        ))

        assert resp.status_code == 200
        with app.app_context():
            sub = Subscription.query.one()
            assert sub.status == "canceled"
            assert sub.canceled_at is not None
            assert WebhookEvent.query.filter_by(
                stripe_event_id="evt_del_1"
            ).one().processed is True

    @patch(RETRIEVE)
    def test_late_checkout_does_not_reactivate(self, mock_retrieve, post_webhook,
                                               app, seed_data):
        """checkout.session.completed arriving after deletion keeps it canceled."""
        make_subscription(app, seed_data["customer_id"], sub_id="sub_new")
        post_webhook(subscription_event(
            "evt_del_1", "customer.subscription.deleted", sub_id="sub_new",
            status="canceled",
        ))
        mock_retrieve.return_value = stripe_subscription(status="active")

        post_webhook(checkout_event())

        with app.app_context():
            assert Subscription.query.one().status == "canceled"


class TestInvoicePaid:
    """Tests for invoice.paid."""

    def test_creates_order_from_subscription(self, post_webhook, app, seed_data):
        sub_id = make_subscription(app, seed_data["customer_id"])

        resp = post_webhook(invoice_event("evt_inv_1", amount=24900))

        assert resp.status_code == 200
        with app.app_context():
            order = Order.query.one()
            assert order.stripe_invoice_id == "in_001"
            assert order.amount_cents == 24900
            assert order.status == "paid"
            assert order.product_type == "semaglutide"
            assert order.subscription_id == sub_id
            assert order.customer_id == seed_data["customer_id"]

    def test_same_invoice_is_recorded_once(self, post_webhook, app, seed_data):
        """Two different events for one invoice -> one order."""
        make_subscription(app, seed_data["customer_id"])

        post_webhook(invoice_event("evt_inv_1"))
        post_webhook(invoice_event("evt_inv_2"))

        with app.app_context():
            assert Order.query.count() == 1
            assert WebhookEvent.query.filter_by(processed=True).count() == 2

    def test_subscription_id_from_invoice_parent(self, post_webhook, app, seed_data):
        """Newer invoices carry the subscription under parent.subscription_details."""
        make_subscription(app, seed_data["customer_id"])
        event = invoice_event("evt_inv_3", invoice_id="in_parent")
        invoice = event["data"]["object"]
        del invoice["subscription"]
        invoice["parent"] = {"subscription_details": {"subscription": "sub_existing"}}

        post_webhook(event)

        with app.app_context():
            assert Order.query.filter_by(stripe_invoice_id="in_parent").count() == 1

    def test_unknown_subscription_is_a_noop(self, post_webhook, app, seed_data):
        resp = post_webhook(invoice_event("evt_inv_4", sub_id="sub_missing"))

        assert resp.status_code == 200
        with app.app_context():
            assert Order.query.count() == 0


class TestInvoicePaymentFailed:
    """Tests for invoice.payment_failed."""

    def test_marks_past_due(self, post_webhook, app, seed_data):
        make_subscription(app, seed_data["customer_id"])

        post_webhook(invoice_event("evt_fail_1", event_type="invoice.payment_failed"))

        with app.app_context():
            assert Subscription.query.one().status == "past_due"
            assert Order.query.count() == 0

    def test_unknown_subscription_is_marked_processed(self, post_webhook, app, seed_data):
        resp = post_webhook(invoice_event(
            "evt_fail_2", event_type="invoice.payment_failed", sub_id="sub_missing",
        ))

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        with app.app_context():
            assert Subscription.query.count() == 0
            assert WebhookEvent.query.one().processed is True

    def test_does_not_override_canceled(self, post_webhook, app, seed_data):
        make_subscription(app, seed_data["customer_id"], status="canceled")

        post_webhook(invoice_event("evt_fail_3", event_type="invoice.payment_failed"))

        with app.app_context():
            assert Subscription.query.one().status == "canceled"


class TestUnknownEvents:
    """Unhandled event types are acknowledged and recorded."""

    def test_unknown_type_is_processed(self, post_webhook, app, seed_data):
        resp = post_webhook({
            "id": "evt_other",
            "type": "customer.created",
            "created": 1767225600,
            "data": {"object": {"id": "cus_x"}},
        })

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        with app.app_context():
            evt = WebhookEvent.query.one()
            assert evt.event_type == "customer.created"
            assert evt.processed is True


class TestFailurePolicy:
    """Dispatch errors are acknowledged but leave the event repairable."""

    @patch(RETRIEVE)
    def test_failure_leaves_event_unprocessed(self, mock_retrieve, post_webhook,
                                              app, seed_data):
        mock_retrieve.side_effect = RuntimeError("stripe is down")

        resp = post_webhook(checkout_event())

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        with app.app_context():
            evt = WebhookEvent.query.one()
            assert evt.processed is False
            assert "stripe is down" in evt.last_error
            assert Subscription.query.count() == 0
            # Customer link rolled back with the rest of the transaction
            assert db.session.get(Customer, 42).stripe_customer_id is None

    @patch(RETRIEVE)
    def test_redelivery_repairs_failed_event(self, mock_retrieve, post_webhook,
                                             app, seed_data):
        mock_retrieve.side_effect = RuntimeError("stripe is down")
        post_webhook(checkout_event())

        mock_retrieve.side_effect = None
        mock_retrieve.return_value = stripe_subscription()
        resp = post_webhook(checkout_event())

        assert resp.get_json() == {"received": True}
        with app.app_context():
            evt = WebhookEvent.query.one()
            assert evt.processed is True
            assert evt.last_error is None
            assert Subscription.query.count() == 1
            assert Order.query.count() == 1

    @patch(RETRIEVE)
    def test_replay_repairs_failed_event(self, mock_retrieve, post_webhook,
                                         app, seed_data):
        mock_retrieve.side_effect = RuntimeError("stripe is down")
        post_webhook(checkout_event())

        mock_retrieve.side_effect = None
        mock_retrieve.return_value = stripe_subscription()
        with app.app_context():
            counts = stripe_service.replay_unprocessed_events()

        assert counts[stripe_service.PROCESSED] == 1
        assert counts[stripe_service.FAILED] == 0
        with app.app_context():
            assert WebhookEvent.query.one().processed is True
            assert Subscription.query.count() == 1

    def test_replay_skips_processed_events(self, post_webhook, app, seed_data):
        post_webhook({"id": "evt_done", "type": "customer.created",
                      "data": {"object": {}}})

        with app.app_context():
            counts = stripe_service.replay_unprocessed_events()

        assert counts == {
            stripe_service.PROCESSED: 0,
            stripe_service.DUPLICATE: 0,
            stripe_service.FAILED: 0,
        }
