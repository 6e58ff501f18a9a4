"""Admin blueprint: /api/admin/*

Dashboard metrics, customer / subscription / order lists, subscription
cancellation and order fulfillment. Everything except login requires an
admin bearer token (@admin_required).

Route Map:
  POST /api/admin/login                - exchange credentials for a JWT
  GET  /api/admin/dashboard            - overview metrics
  GET  /api/admin/customers            - paginated customer list (?search)
  GET  /api/admin/subscriptions        - subscriptions (?status)
  GET  /api/admin/orders               - orders (?status)
  GET  /api/admin/revenue-chart        - paid revenue per day, last 30 days
  POST /api/admin/cancel-subscription  - cancel in Stripe (now or period end)
  POST /api/admin/update-order-status  - order status / pharmacy / tracking
  GET  /api/admin/analytics/live       - visitors right now
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from telehealth.decorators import admin_required
from telehealth.errors import ValidationError, json_object
from telehealth.extensions import limiter
from telehealth.services import (
    analytics_service,
    auth_service,
    billing_service,
    reporting_service,
    stripe_service,
)

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _flag(value):
    """JSON true, or the strings "true" / "1"; anything else is False."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1")
    return value is True


# ══════════════════════════════════════════════
#  AUTH
# ══════════════════════════════════════════════

@admin_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    data = json_object(request.get_json(silent=True))
    token, admin = auth_service.authenticate_admin(
        data.get("email"), data.get("password")
    )
    logger.info(f"Admin login: {admin.email}")
    return jsonify({
        "token": token,
        "admin": {"id": admin.id, "email": admin.email, "role": admin.role},
    })


# ══════════════════════════════════════════════
#  DASHBOARD & LISTS
# ══════════════════════════════════════════════

@admin_bp.route("/dashboard")
@admin_required
def dashboard():
    stats = reporting_service.dashboard_stats()
    stats["stripeConnected"] = bool(current_app.config.get("STRIPE_SECRET_KEY"))
    stats["mdiConnected"] = bool(current_app.config.get("MDI_API_KEY"))
    return jsonify(stats)


@admin_bp.route("/customers")
@admin_required
def customers():
    return jsonify(reporting_service.list_customers(
        page=_int_arg("page", 1),
        limit=_int_arg("limit", 50),
        search=request.args.get("search", "").strip(),
    ))


@admin_bp.route("/subscriptions")
@admin_required
def subscriptions():
    return jsonify(reporting_service.list_subscriptions(
        status=request.args.get("status", "all"),
        page=_int_arg("page", 1),
        limit=_int_arg("limit", 50),
    ))


@admin_bp.route("/orders")
@admin_required
def orders():
    return jsonify(reporting_service.list_orders(
        status=request.args.get("status", "all"),
        page=_int_arg("page", 1),
        limit=_int_arg("limit", 50),
    ))


@admin_bp.route("/revenue-chart")
@admin_required
def revenue_chart():
    return jsonify(reporting_service.revenue_by_day(30))


@admin_bp.route("/analytics/live")
@admin_required
def analytics_live():
    return jsonify(analytics_service.live_stats())


# ══════════════════════════════════════════════
#  ACTIONS
# ══════════════════════════════════════════════

@admin_bp.route("/cancel-subscription", methods=["POST"])
@admin_required
def cancel_subscription():
    """Cancel a subscription in Stripe; the webhooks update the ledger."""
    data = json_object(request.get_json(silent=True))
    subscription_id = data.get("subscriptionId")
    if subscription_id is None:
        raise ValidationError("subscriptionId required")
    try:
        subscription_id = int(subscription_id)
    except (TypeError, ValueError):
        raise ValidationError("subscriptionId must be an integer")

    message = stripe_service.cancel_subscription(
        subscription_id,
        immediate=_flag(data.get("immediate")),
        admin_id=current_user.id,
    )
    return jsonify({"success": True, "message": message})


@admin_bp.route("/update-order-status", methods=["POST"])
@admin_required
def update_order_status():
    data = json_object(request.get_json(silent=True))
    order_id = data.get("orderId")
    if order_id is None:
        raise ValidationError("orderId required")
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        raise ValidationError("orderId must be an integer")

    order = billing_service.update_order_fulfillment(
        order_id,
        status=data.get("status"),
        pharmacy_status=data.get("pharmacyStatus"),
        tracking_number=data.get("trackingNumber"),
        admin_id=current_user.id,
    )
    return jsonify({
        "success": True,
        "order": {
            "id": order.id,
            "status": order.status,
            "pharmacyStatus": order.pharmacy_status,
            "trackingNumber": order.tracking_number,
        },
    })
