"""Billing ledger models.

- Subscription: one row per Stripe subscription id, mirrored from
  webhook events. status / period fields are only ever written by the
  webhook reconciler.
- Order: one row per billing transaction (initial checkout payment or a
  paid renewal invoice), plus pharmacy fulfillment fields edited by admins.
"""

from telehealth.extensions import db


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    # -- Statuses we set ourselves; anything else is mirrored from Stripe --
    STATUSES = [
        "pending",
        "active",
        "past_due",
        "canceled",
        "paused",
    ]

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(
        db.Integer,
        db.ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stripe_subscription_id = db.Column(
        db.String(255), unique=True, nullable=False
    )
    stripe_price_id = db.Column(db.String(255))
    product_type = db.Column(db.String(50), nullable=False)  # semaglutide | tirzepatide
    plan_type = db.Column(db.String(20), nullable=False)  # monthly | 3month | 6month
    status = db.Column(
        db.String(30), nullable=False, default="pending", index=True
    )
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), default="usd")
    current_period_start = db.Column(db.DateTime(timezone=True))
    current_period_end = db.Column(db.DateTime(timezone=True))
    cancel_at = db.Column(db.DateTime(timezone=True))
    canceled_at = db.Column(db.DateTime(timezone=True))  # immutable once set
    last_event_at = db.Column(
        db.DateTime(timezone=True)
    )  # Stripe `created` of the newest event applied to this row
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    customer = db.relationship("Customer", back_populates="subscriptions")
    orders = db.relationship("Order", back_populates="subscription", lazy="dynamic")

    @property
    def is_active(self):
        return self.status == "active"

    def __repr__(self):
        return f"<Subscription {self.stripe_subscription_id} ({self.status})>"


class Order(db.Model):
    __tablename__ = "orders"

    STATUSES = [
        "pending",
        "paid",
        "fulfilled",
        "shipped",
        "delivered",
        "refunded",
    ]
    PHARMACY_STATUSES = ["pending", "processing", "shipped", "delivered"]

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(
        db.Integer,
        db.ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id = db.Column(
        db.Integer,
        db.ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
    )
    stripe_invoice_id = db.Column(
        db.String(255), unique=True, nullable=True
    )  # NULL for the initial checkout order
    stripe_payment_intent_id = db.Column(db.String(255))
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(30), default="pending", index=True)
    product_type = db.Column(db.String(50))
    mdi_encounter_id = db.Column(db.String(255))
    pharmacy_status = db.Column(db.String(30))
    tracking_number = db.Column(db.String(255))
    notes = db.Column(db.Text)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    customer = db.relationship("Customer", back_populates="orders")
    subscription = db.relationship("Subscription", back_populates="orders")

    def __repr__(self):
        return f"<Order {self.id} {self.amount_cents}c ({self.status})>"
