"""Webhooks blueprint: /api/webhooks/stripe

Receives Stripe webhook events. The raw body is required for signature
verification, so it is read before anything parses it.
"""

import logging

from flask import Blueprint, jsonify, request

from telehealth.errors import SignatureInvalid
from telehealth.services.stripe_service import (
    DUPLICATE,
    FAILED,
    handle_webhook_event,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via webhook_events table)
    4. Return 200 to acknowledge receipt, even if processing failed
    """
    payload = request.get_data()
    sig_header = request.headers.get("Stripe-Signature")

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(payload, sig_header)
    except SignatureInvalid as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return jsonify({"error": "Invalid signature"}), 400

    # --- Process event (idempotent) ---
    outcome = handle_webhook_event(event)

    body = {"received": True}
    if outcome == DUPLICATE:
        body["duplicate"] = True
    elif outcome == FAILED:
        logger.error(f"Webhook {event['id']} acknowledged but not applied")
    return jsonify(body), 200
