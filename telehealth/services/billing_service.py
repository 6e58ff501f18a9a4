"""Billing service: ledger writes for customers, subscriptions and orders.

Responsible for:
- Resolving / creating customers by normalized email
- Linking a Stripe customer id to a customer (write-once)
- Upserting subscriptions by stripe_subscription_id (INSERT .. ON CONFLICT)
- Recording orders for checkout payments and paid invoices
- Applying status changes mirrored from Stripe (updated / deleted / past_due)
- Admin fulfillment edits on orders

get_or_create_customer and update_order_fulfillment commit; everything
else flushes but never commits, the caller (webhook reconciler or route)
owns the transaction boundary.
"""

import logging
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from telehealth.errors import NotFound, ValidationError
from telehealth.extensions import db
from telehealth.models.audit import AdminActivity
from telehealth.models.billing import Order, Subscription
from telehealth.models.customer import Customer, normalize_email

logger = logging.getLogger(__name__)


def _upsert_insert(model):
    """Dialect-specific INSERT construct that supports ON CONFLICT."""
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise RuntimeError(f"Upserts are not supported on {dialect}")


def _as_utc(value):
    """SQLite hands back naive datetimes even for timezone=True columns."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_stale(sub, event_at):
    """True if `event_at` predates the newest event already applied to `sub`."""
    if event_at is None or sub.last_event_at is None:
        return False
    return _as_utc(event_at) < _as_utc(sub.last_event_at)


def _touch(sub, event_at):
    if event_at is not None:
        sub.last_event_at = event_at


# ──────────────────────────────────────────────
# Customers
# ──────────────────────────────────────────────

def get_customer_by_email(email):
    return Customer.query.filter_by(email=normalize_email(email)).first()


def get_or_create_customer(email, first_name=None, last_name=None):
    """Return the customer for `email`, creating (and committing) it if needed.

    Concurrent first checkouts for the same email race on the unique
    email constraint; the loser re-reads the winner's row.
    """
    email = normalize_email(email)
    customer = Customer.query.filter_by(email=email).first()
    if customer:
        return customer

    customer = Customer(
        email=email,
        first_name=first_name or None,
        last_name=last_name or None,
        role="customer",
    )
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(f"Customer {email} created concurrently, re-reading")
        customer = Customer.query.filter_by(email=email).one()
    return customer


def link_stripe_customer(customer_id, stripe_customer_id):
    """Attach a Stripe customer id to a customer if it has none yet.

    The link is write-once: an existing stripe_customer_id is never
    overwritten. Returns True if this call set it.
    """
    if not stripe_customer_id:
        return False

    owner = Customer.query.filter_by(stripe_customer_id=stripe_customer_id).first()
    if owner is not None:
        if owner.id != customer_id:
            logger.warning(
                f"Stripe customer {stripe_customer_id} already linked to "
                f"customer {owner.id}; not linking to {customer_id}"
            )
        return False

    result = db.session.execute(
        sa.update(Customer)
        .where(Customer.id == customer_id, Customer.stripe_customer_id.is_(None))
        .values(stripe_customer_id=stripe_customer_id)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount > 0


def update_shipping_address(customer, shipping):
    """Overwrite the customer's shipping fields from a checkout address."""
    customer.shipping_street = shipping.street
    customer.shipping_city = shipping.city
    customer.shipping_state = shipping.state
    customer.shipping_zip = shipping.postal_code
    db.session.flush()


# ──────────────────────────────────────────────
# Subscriptions
# ──────────────────────────────────────────────

def get_subscription(stripe_subscription_id):
    if not stripe_subscription_id:
        return None
    return Subscription.query.filter_by(
        stripe_subscription_id=stripe_subscription_id
    ).first()


def upsert_subscription(customer_id, stripe_subscription_id, status,
                        product_type, plan_type, amount_cents,
                        stripe_price_id=None, current_period_start=None,
                        current_period_end=None, event_at=None):
    """Insert a subscription, or refresh it if the Stripe id already exists.

    On conflict only status and period fields change; amount, product,
    plan and owner keep their first-seen values. A canceled row keeps
    its canceled status.

    Returns the Subscription instance.
    """
    table = Subscription.__table__
    stmt = _upsert_insert(Subscription).values(
        customer_id=customer_id,
        stripe_subscription_id=stripe_subscription_id,
        stripe_price_id=stripe_price_id,
        product_type=product_type,
        plan_type=plan_type,
        status=status,
        amount_cents=amount_cents,
        current_period_start=current_period_start,
        current_period_end=current_period_end,
        last_event_at=event_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["stripe_subscription_id"],
        set_={
            "status": sa.case(
                (table.c.status == "canceled", table.c.status),
                else_=stmt.excluded.status,
            ),
            "current_period_start": stmt.excluded.current_period_start,
            "current_period_end": stmt.excluded.current_period_end,
            # keep the newest event time seen
            "last_event_at": sa.case(
                (table.c.last_event_at.is_(None), stmt.excluded.last_event_at),
                (
                    stmt.excluded.last_event_at > table.c.last_event_at,
                    stmt.excluded.last_event_at,
                ),
                else_=table.c.last_event_at,
            ),
            "updated_at": sa.func.now(),
        },
    )
    db.session.execute(stmt)

    return (
        Subscription.query
        .populate_existing()
        .filter_by(stripe_subscription_id=stripe_subscription_id)
        .one()
    )


def apply_subscription_update(stripe_subscription_id, status,
                              current_period_start, current_period_end,
                              cancel_at, event_at=None):
    """Mirror a customer.subscription.updated payload onto the ledger.

    Returns one of: "updated", "not_found", "stale", "canceled".
    """
    sub = get_subscription(stripe_subscription_id)
    if sub is None:
        return "not_found"
    if sub.status == "canceled":
        return "canceled"
    if _is_stale(sub, event_at):
        return "stale"

    sub.status = status
    sub.current_period_start = current_period_start
    sub.current_period_end = current_period_end
    sub.cancel_at = cancel_at
    _touch(sub, event_at)
    db.session.flush()
    return "updated"


def mark_subscription_canceled(stripe_subscription_id, event_at=None):
    """Set status=canceled and stamp canceled_at, once.

    Returns one of: "canceled", "not_found", "already_canceled".
    """
    sub = get_subscription(stripe_subscription_id)
    if sub is None:
        return "not_found"
    if sub.status == "canceled" and sub.canceled_at is not None:
        return "already_canceled"

    # An earlier updated(status=canceled) leaves canceled_at unset
    sub.status = "canceled"
    sub.canceled_at = datetime.now(timezone.utc)
    _touch(sub, event_at)
    db.session.flush()
    return "canceled"


def mark_subscription_past_due(stripe_subscription_id, event_at=None):
    """Set status=past_due after a failed invoice payment.

    Returns one of: "past_due", "not_found", "stale", "canceled".
    """
    sub = get_subscription(stripe_subscription_id)
    if sub is None:
        return "not_found"
    if sub.status == "canceled":
        return "canceled"
    if _is_stale(sub, event_at):
        return "stale"

    sub.status = "past_due"
    _touch(sub, event_at)
    db.session.flush()
    return "past_due"


# ──────────────────────────────────────────────
# Orders
# ──────────────────────────────────────────────

def record_checkout_order(customer_id, subscription, amount_cents,
                          product_type, payment_intent_id=None):
    """Record the initial checkout payment as a paid order."""
    order = Order(
        customer_id=customer_id,
        subscription_id=subscription.id if subscription else None,
        stripe_payment_intent_id=payment_intent_id,
        amount_cents=amount_cents,
        status="paid",
        product_type=product_type,
    )
    db.session.add(order)
    db.session.flush()
    return order


def record_invoice_order(subscription, invoice_id, amount_cents,
                         payment_intent_id=None):
    """Record a paid invoice as an order, at most once per invoice id.

    Returns True if a new order row was inserted.
    """
    stmt = (
        _upsert_insert(Order)
        .values(
            customer_id=subscription.customer_id,
            subscription_id=subscription.id,
            stripe_invoice_id=invoice_id,
            stripe_payment_intent_id=payment_intent_id,
            amount_cents=amount_cents,
            status="paid",
            product_type=subscription.product_type,
        )
        .on_conflict_do_nothing(index_elements=["stripe_invoice_id"])
    )
    result = db.session.execute(stmt)
    return result.rowcount > 0


def update_order_fulfillment(order_id, status=None, pharmacy_status=None,
                             tracking_number=None, admin_id=None):
    """Admin edit of an order's status / pharmacy fields.

    Only the fields passed (not None) change. Raises ValidationError on an
    unknown status, NotFound if the order doesn't exist.
    """
    if status is not None and status not in Order.STATUSES:
        raise ValidationError(f"Invalid status: {status}")
    if pharmacy_status is not None and pharmacy_status not in Order.PHARMACY_STATUSES:
        raise ValidationError(f"Invalid pharmacy status: {pharmacy_status}")

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")

    changes = {}
    for field, value in (
        ("status", status),
        ("pharmacy_status", pharmacy_status),
        ("tracking_number", tracking_number),
    ):
        if value is not None and getattr(order, field) != value:
            changes[field] = {"from": getattr(order, field), "to": value}
            setattr(order, field, value)

    db.session.add(AdminActivity(
        admin_id=admin_id,
        action="update_order_status",
        target_type="order",
        target_id=order.id,
        details=changes,
    ))
    db.session.commit()
    logger.info(f"Order {order.id} updated: {changes}")
    return order
