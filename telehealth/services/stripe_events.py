"""Typed Stripe webhook events.

A verified event body is decoded exactly once, here, into one of a
closed set of variants. The reconciler dispatches on the variant class,
never on the raw `type` string, and handlers only see the fields they
need. Anything we don't handle becomes UnrecognizedEvent.

Stripe has moved a few fields between API versions; the decoders accept
both shapes:
- subscription period fields: top level, or items.data[0]
- invoice subscription id: invoice.subscription, or
  invoice.parent.subscription_details.subscription
- checkout shipping: session.shipping_details, or
  session.collected_information.shipping_details

Objects fetched through the SDK (stripe.Subscription.retrieve and friends)
are StripeObjects, not dicts, so the shared helpers read them with item
access through `field`.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def from_unix(ts):
    """Convert a Stripe unix timestamp to an aware UTC datetime (None-safe)."""
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


def field(obj, key):
    """Read `key` from an event dict or a StripeObject; None when absent."""
    if obj is None:
        return None
    try:
        return obj[key]
    except KeyError:
        return None


def _first_item(obj):
    data = field(field(obj, "items"), "data") or []
    return data[0] if data else None


def extract_period(sub_data, name):
    """Read current_period_start / current_period_end from a subscription.

    Newer API versions moved these from the subscription top level to
    items.data[0]. Returns an aware datetime or None.
    """
    ts = field(sub_data, name)
    if not ts:
        ts = field(_first_item(sub_data), name)
    return from_unix(ts)


def extract_price(sub_data):
    """Return (price_id, unit_amount) of the subscription's first item."""
    price = field(_first_item(sub_data), "price")
    return field(price, "id"), field(price, "unit_amount") or 0


def _parse_customer_ref(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class ShippingAddress:
    street: Optional[str]
    city: Optional[str]
    state: Optional[str]
    postal_code: Optional[str]

    @classmethod
    def from_session(cls, session):
        details = session.get("shipping_details")
        if not details:
            details = (session.get("collected_information") or {}).get(
                "shipping_details"
            )
        address = (details or {}).get("address")
        if not address:
            return None
        street = address.get("line1") or ""
        if address.get("line2"):
            street = f"{street} {address['line2']}"
        return cls(
            street=street or None,
            city=address.get("city"),
            state=address.get("state"),
            postal_code=address.get("postal_code"),
        )


@dataclass(frozen=True)
class StripeEvent:
    event_id: str
    event_type: str
    created: Optional[datetime]


@dataclass(frozen=True)
class CheckoutCompleted(StripeEvent):
    session_id: Optional[str]
    mode: Optional[str]
    customer_ref: Optional[int]  # our customers.id from session metadata
    stripe_customer_id: Optional[str]
    stripe_subscription_id: Optional[str]
    payment_intent: Optional[str]
    product_type: str
    plan_type: str
    shipping: Optional[ShippingAddress]


@dataclass(frozen=True)
class SubscriptionUpdated(StripeEvent):
    stripe_subscription_id: str
    status: str
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    cancel_at: Optional[datetime]


@dataclass(frozen=True)
class SubscriptionDeleted(StripeEvent):
    stripe_subscription_id: str


@dataclass(frozen=True)
class InvoicePaid(StripeEvent):
    invoice_id: str
    stripe_subscription_id: Optional[str]
    payment_intent: Optional[str]
    amount_paid: int


@dataclass(frozen=True)
class InvoicePaymentFailed(StripeEvent):
    invoice_id: Optional[str]
    stripe_subscription_id: Optional[str]
    amount_due: Optional[int]


@dataclass(frozen=True)
class UnrecognizedEvent(StripeEvent):
    pass


def invoice_subscription_id(invoice):
    sub_id = invoice.get("subscription")
    if sub_id:
        return sub_id if isinstance(sub_id, str) else sub_id.get("id")
    parent = invoice.get("parent") or {}
    return (parent.get("subscription_details") or {}).get("subscription")


def _decode_checkout(base, obj):
    metadata = obj.get("metadata") or {}
    return CheckoutCompleted(
        **base,
        session_id=obj.get("id"),
        mode=obj.get("mode"),
        customer_ref=_parse_customer_ref(metadata.get("db_customer_id")),
        stripe_customer_id=obj.get("customer"),
        stripe_subscription_id=obj.get("subscription"),
        payment_intent=obj.get("payment_intent"),
        product_type=metadata.get("product_type") or "unknown",
        plan_type=metadata.get("plan_type") or "monthly",
        shipping=ShippingAddress.from_session(obj),
    )


def _decode_subscription_updated(base, obj):
    return SubscriptionUpdated(
        **base,
        stripe_subscription_id=obj.get("id"),
        status=obj.get("status"),
        current_period_start=extract_period(obj, "current_period_start"),
        current_period_end=extract_period(obj, "current_period_end"),
        cancel_at=from_unix(obj.get("cancel_at")),
    )


def _decode_subscription_deleted(base, obj):
    return SubscriptionDeleted(**base, stripe_subscription_id=obj.get("id"))


def _decode_invoice_paid(base, obj):
    return InvoicePaid(
        **base,
        invoice_id=obj.get("id"),
        stripe_subscription_id=invoice_subscription_id(obj),
        payment_intent=obj.get("payment_intent"),
        amount_paid=obj.get("amount_paid") or 0,
    )


def _decode_invoice_failed(base, obj):
    return InvoicePaymentFailed(
        **base,
        invoice_id=obj.get("id"),
        stripe_subscription_id=invoice_subscription_id(obj),
        amount_due=obj.get("amount_due"),
    )


_DECODERS = {
    "checkout.session.completed": _decode_checkout,
    "customer.subscription.updated": _decode_subscription_updated,
    "customer.subscription.deleted": _decode_subscription_deleted,
    "invoice.paid": _decode_invoice_paid,
    "invoice.payment_failed": _decode_invoice_failed,
}


def decode_event(event):
    """Decode a verified Stripe event dict into its typed variant."""
    base = {
        "event_id": event["id"],
        "event_type": event["type"],
        "created": from_unix(event.get("created")),
    }
    decoder = _DECODERS.get(event["type"])
    if decoder is None:
        return UnrecognizedEvent(**base)
    obj = (event.get("data") or {}).get("object") or {}
    return decoder(base, obj)
