"""Webhook event model (idempotency + audit table).

Every Stripe event is recorded by its event ID before dispatch. The
unique constraint on stripe_event_id is what makes the gate atomic:
a second insert of the same id fails and the delivery is treated as
"already seen". `processed` flips to true in the same transaction as
the ledger mutation, so an unprocessed row means the effect was never
applied and a redelivery (or `flask replay-webhooks`) may retry it.
"""

from telehealth.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"

    id = db.Column(db.Integer, primary_key=True)
    stripe_event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(100), nullable=False
    )  # e.g. "checkout.session.completed"
    payload = db.Column(db.JSON)  # the full verified event
    processed = db.Column(db.Boolean, nullable=False, default=False)
    processed_at = db.Column(db.DateTime(timezone=True))
    last_error = db.Column(db.Text)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<WebhookEvent {self.stripe_event_id} ({self.event_type})>"
