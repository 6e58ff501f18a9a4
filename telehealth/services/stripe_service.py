"""Stripe service: all Stripe API calls and webhook reconciliation.

Responsible for:
- Creating Stripe Checkout Sessions (subscriptions)
- Creating Stripe Customer Portal Sessions
- Cancelling subscriptions on behalf of an admin
- Verifying webhook signatures
- Applying webhook events to the billing ledger, idempotently

Webhook flow:
1. The event id is inserted into webhook_events (processed = false) and
   committed. The unique constraint is the idempotency gate: if the row
   already exists and is processed, the delivery is a duplicate.
2. The event is decoded into its typed variant and dispatched. Ledger
   writes and the processed flag commit in a single transaction.
3. Any dispatch error rolls that transaction back, leaving the event
   row unprocessed (with last_error) so a redelivery can repair it.
   The caller still acknowledges the delivery.
"""

import json
import logging
from datetime import datetime, timezone

import sqlalchemy as sa
import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError

from telehealth.errors import NotFound, SignatureInvalid, UnknownPlan, UpstreamError, ValidationError
from telehealth.extensions import db
from telehealth.models.audit import AdminActivity
from telehealth.models.billing import Order, Subscription
from telehealth.models.customer import Customer
from telehealth.models.webhook_event import WebhookEvent
from telehealth.services import billing_service
from telehealth.services.stripe_events import (
    CheckoutCompleted,
    InvoicePaid,
    InvoicePaymentFailed,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnrecognizedEvent,
    decode_event,
    extract_period,
    extract_price,
    field,
)

logger = logging.getLogger(__name__)

# Outcomes of handle_webhook_event()
PROCESSED = "processed"
DUPLICATE = "duplicate"
FAILED = "failed"


def _configure():
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]


def get_price_id(product_type, plan_type):
    """Map a (product, plan) pair to its configured Stripe price ID, or None."""
    prices = current_app.config.get("STRIPE_PRICES") or {}
    return prices.get(f"{product_type}_{plan_type}")


# ──────────────────────────────────────────────
# Checkout & Portal Sessions
# ──────────────────────────────────────────────

def create_checkout_session(email, product_type, plan_type,
                            first_name=None, last_name=None):
    """Create a Stripe Checkout Session for a new subscription.

    Gets or creates the customer row by email, then the Stripe customer
    (linked to the row once, permanently). The session metadata carries
    db_customer_id, which is how the checkout.session.completed webhook
    finds the customer again.

    Returns {"url": ..., "sessionId": ...}.
    Raises ValidationError / UnknownPlan on bad input, UpstreamError if
    Stripe fails.
    """
    if not email or not product_type or not plan_type:
        raise ValidationError("email, productType, and planType are required")

    price_id = get_price_id(product_type, plan_type)
    if not price_id:
        raise UnknownPlan()

    _configure()
    brand_name = current_app.config["BRAND_NAME"]
    brand_domain = current_app.config["BRAND_DOMAIN"]

    customer = billing_service.get_or_create_customer(email, first_name, last_name)

    try:
        stripe_customer_id = customer.stripe_customer_id
        if not stripe_customer_id:
            customer_params = {
                "email": customer.email,
                "metadata": {
                    "brand": brand_name,
                    "db_customer_id": str(customer.id),
                },
            }
            name = " ".join(p for p in (first_name, last_name) if p)
            if name:
                customer_params["name"] = name
            stripe_customer = stripe.Customer.create(**customer_params)

            billing_service.link_stripe_customer(customer.id, stripe_customer.id)
            db.session.commit()
            # A concurrent checkout may have linked a different id first
            db.session.refresh(customer)
            stripe_customer_id = customer.stripe_customer_id

        metadata = {
            "product_type": product_type,
            "plan_type": plan_type,
            "db_customer_id": str(customer.id),
        }
        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=stripe_customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{brand_domain}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{brand_domain}/#products",
            metadata={**metadata, "brand": brand_name},
            subscription_data={"metadata": metadata},
            # Collect shipping address for medication delivery
            shipping_address_collection={"allowed_countries": ["US"]},
            allow_promotion_codes=True,
        )
    except stripe.StripeError as e:
        db.session.rollback()
        logger.error(f"Checkout error for {customer.email}: {e}", exc_info=True)
        raise UpstreamError("Failed to create checkout session") from e

    logger.info(
        f"Checkout session {session.id} created: customer={customer.id} "
        f"product={product_type} plan={plan_type}"
    )
    return {"url": session.url, "sessionId": session.id}


def create_portal_session(email):
    """Create a Stripe Customer Portal Session for the customer with `email`.

    Returns the portal session URL.
    Raises NotFound if the customer has never been linked to Stripe.
    """
    customer = billing_service.get_customer_by_email(email)
    if customer is None or not customer.stripe_customer_id:
        raise NotFound("No subscription found")

    _configure()
    try:
        session = stripe.billing_portal.Session.create(
            customer=customer.stripe_customer_id,
            return_url=current_app.config["BRAND_DOMAIN"],
        )
    except stripe.StripeError as e:
        logger.error(f"Portal error for {customer.email}: {e}", exc_info=True)
        raise UpstreamError("Failed to create portal session") from e
    return session.url


def cancel_subscription(subscription_id, immediate=False, admin_id=None):
    """Cancel a subscription in Stripe (now, or at period end).

    The ledger itself is not touched here: Stripe answers with
    customer.subscription.updated / .deleted webhooks and the reconciler
    mirrors those. Returns a human-readable message.
    """
    sub = db.session.get(Subscription, subscription_id)
    if sub is None:
        raise NotFound("Subscription not found")

    _configure()
    try:
        if immediate:
            stripe.Subscription.cancel(sub.stripe_subscription_id)
        else:
            stripe.Subscription.modify(
                sub.stripe_subscription_id, cancel_at_period_end=True
            )
    except stripe.StripeError as e:
        logger.error(
            f"Cancel error for {sub.stripe_subscription_id}: {e}", exc_info=True
        )
        raise UpstreamError("Failed to cancel subscription") from e

    db.session.add(AdminActivity(
        admin_id=admin_id,
        action="cancel_subscription",
        target_type="subscription",
        target_id=sub.id,
        details={
            "immediate": bool(immediate),
            "stripe_subscription_id": sub.stripe_subscription_id,
        },
    ))
    db.session.commit()

    return "Canceled immediately" if immediate else "Will cancel at period end"


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify the Stripe-Signature header against the raw body bytes.

    Returns the decoded event as a plain dict.
    Raises SignatureInvalid on a missing or bad signature.
    """
    if not sig_header:
        raise SignatureInvalid("Missing signature")

    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    try:
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        stripe.WebhookSignature.verify_header(
            body, sig_header, webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE
        )
    except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
        raise SignatureInvalid() from e

    try:
        event = json.loads(body)
    except ValueError as e:
        raise ValidationError("Invalid payload") from e
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise ValidationError("Invalid payload")
    return event


def handle_webhook_event(event):
    """Apply a verified Stripe event to the ledger.

    Never raises: dispatch errors are logged and reported as FAILED so
    the endpoint can still acknowledge the delivery.

    Returns PROCESSED, DUPLICATE or FAILED.
    """
    if not _open_event_record(event):
        logger.info(f"Duplicate webhook event {event['id']}, skipping")
        return DUPLICATE
    return _process_event(event)


def replay_unprocessed_events(limit=100):
    """Re-dispatch stored events that were logged but never applied.

    Returns a dict of outcome -> count.
    """
    pending = (
        WebhookEvent.query
        .filter_by(processed=False)
        .order_by(WebhookEvent.id)
        .limit(limit)
        .all()
    )
    counts = {PROCESSED: 0, DUPLICATE: 0, FAILED: 0}
    for record in pending:
        if not record.payload:
            logger.warning(f"Event {record.stripe_event_id} has no stored payload")
            counts[FAILED] += 1
            continue
        counts[_process_event(record.payload)] += 1
    return counts


def _open_event_record(event):
    """Insert the webhook_events row; return False if already processed."""
    db.session.add(WebhookEvent(
        stripe_event_id=event["id"],
        event_type=event["type"],
        payload=event,
        processed=False,
    ))
    try:
        db.session.commit()
        return True
    except IntegrityError:
        db.session.rollback()

    existing = WebhookEvent.query.filter_by(stripe_event_id=event["id"]).first()
    if existing is None or existing.processed:
        return False

    logger.warning(
        f"Webhook event {event['id']} was logged but never applied, retrying"
    )
    return True


def _process_event(event):
    event_id = event["id"]
    event_type = event["type"]
    try:
        _dispatch(decode_event(event))

        # Flip processed in the same transaction as the ledger writes.
        # Zero rows means a concurrent delivery finished first.
        result = db.session.execute(
            sa.update(WebhookEvent)
            .where(
                WebhookEvent.stripe_event_id == event_id,
                WebhookEvent.processed.is_(False),
            )
            .values(
                processed=True,
                processed_at=datetime.now(timezone.utc),
                last_error=None,
            )
        )
        if result.rowcount == 0:
            db.session.rollback()
            logger.info(f"Webhook event {event_id} applied concurrently, discarding")
            return DUPLICATE

        db.session.commit()
        return PROCESSED
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error processing {event_type} ({event_id}): {e}", exc_info=True)
        _record_failure(event_id, e)
        return FAILED


def _record_failure(event_id, error):
    try:
        db.session.execute(
            sa.update(WebhookEvent)
            .where(WebhookEvent.stripe_event_id == event_id)
            .values(last_error=str(error)[:2000])
        )
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Could not record failure for webhook event {event_id}: {e}")


def _dispatch(evt):
    handler = _HANDLERS.get(type(evt))
    if handler is None:
        logger.info(f"Unhandled event type: {evt.event_type}")
        return
    handler(evt)


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def _handle_checkout_completed(evt):
    """Handle checkout.session.completed (subscription mode only).

    Links the Stripe customer, saves the shipping address, upserts the
    subscription from the full Stripe object and records the initial
    payment as a paid order.
    """
    if evt.mode != "subscription":
        logger.info(f"checkout.session.completed {evt.session_id}: mode={evt.mode}, skipping")
        return
    if not evt.customer_ref or not evt.stripe_subscription_id:
        logger.warning(
            f"checkout.session.completed {evt.session_id} missing "
            f"db_customer_id or subscription"
        )
        return

    customer = db.session.get(Customer, evt.customer_ref)
    if customer is None:
        logger.warning(
            f"checkout.session.completed {evt.session_id}: "
            f"no customer {evt.customer_ref}"
        )
        return

    billing_service.link_stripe_customer(customer.id, evt.stripe_customer_id)
    if evt.shipping:
        billing_service.update_shipping_address(customer, evt.shipping)

    # Retrieve full subscription from Stripe for price + period details
    _configure()
    stripe_sub = stripe.Subscription.retrieve(evt.stripe_subscription_id)
    price_id, amount_cents = extract_price(stripe_sub)

    sub = billing_service.upsert_subscription(
        customer_id=customer.id,
        stripe_subscription_id=evt.stripe_subscription_id,
        status=field(stripe_sub, "status") or "active",
        product_type=evt.product_type,
        plan_type=evt.plan_type,
        amount_cents=amount_cents,
        stripe_price_id=price_id,
        current_period_start=extract_period(stripe_sub, "current_period_start"),
        current_period_end=extract_period(stripe_sub, "current_period_end"),
        event_at=evt.created,
    )

    already_recorded = (
        Order.query
        .filter_by(subscription_id=sub.id, stripe_invoice_id=None)
        .first()
    )
    if already_recorded:
        logger.info(f"Initial order for {sub.stripe_subscription_id} already recorded")
    else:
        billing_service.record_checkout_order(
            customer_id=customer.id,
            subscription=sub,
            amount_cents=amount_cents,
            product_type=evt.product_type,
            payment_intent_id=evt.payment_intent,
        )

    logger.info(
        f"New subscription: customer={customer.id} product={evt.product_type} "
        f"plan={evt.plan_type}"
    )


def _handle_subscription_updated(evt):
    """Handle customer.subscription.updated (renewal, plan change, cancel_at)."""
    outcome = billing_service.apply_subscription_update(
        evt.stripe_subscription_id,
        status=evt.status,
        current_period_start=evt.current_period_start,
        current_period_end=evt.current_period_end,
        cancel_at=evt.cancel_at,
        event_at=evt.created,
    )
    if outcome == "updated":
        logger.info(f"Subscription updated: {evt.stripe_subscription_id} -> {evt.status}")
    else:
        # Not found is normal when this arrives before checkout.session.completed
        logger.info(
            f"subscription.updated {evt.stripe_subscription_id} ignored: {outcome}"
        )


def _handle_subscription_deleted(evt):
    """Handle customer.subscription.deleted."""
    outcome = billing_service.mark_subscription_canceled(
        evt.stripe_subscription_id, event_at=evt.created
    )
    logger.info(f"Subscription deleted: {evt.stripe_subscription_id} ({outcome})")


def _handle_invoice_paid(evt):
    """Handle invoice.paid - one paid order per renewal invoice."""
    if not evt.stripe_subscription_id:
        return

    sub = billing_service.get_subscription(evt.stripe_subscription_id)
    if sub is None:
        logger.info(
            f"invoice.paid {evt.invoice_id}: unknown subscription "
            f"{evt.stripe_subscription_id}"
        )
        return

    created = billing_service.record_invoice_order(
        sub, evt.invoice_id, evt.amount_paid, payment_intent_id=evt.payment_intent
    )
    if created:
        logger.info(f"Invoice paid: {evt.invoice_id} amount={evt.amount_paid}")
    else:
        logger.info(f"Invoice {evt.invoice_id} already has an order")


def _handle_invoice_payment_failed(evt):
    """Handle invoice.payment_failed - mark the subscription past_due."""
    if not evt.stripe_subscription_id:
        return

    outcome = billing_service.mark_subscription_past_due(
        evt.stripe_subscription_id, event_at=evt.created
    )
    logger.warning(
        f"Payment failed: subscription={evt.stripe_subscription_id} "
        f"amount_due={evt.amount_due} ({outcome})"
    )
    # TODO: email the customer a "payment failed, update your card" notice


_HANDLERS = {
    CheckoutCompleted: _handle_checkout_completed,
    SubscriptionUpdated: _handle_subscription_updated,
    SubscriptionDeleted: _handle_subscription_deleted,
    InvoicePaid: _handle_invoice_paid,
    InvoicePaymentFailed: _handle_invoice_payment_failed,
    UnrecognizedEvent: None,
}
