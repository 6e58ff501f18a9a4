"""Checkout blueprint: /api/*

Public, customer-facing billing endpoints.

Routes:
- GET  /api/products             - product catalog
- POST /api/checkout             - create Checkout Session, returns its URL
- POST /api/customer-portal      - create Customer Portal Session
- GET  /api/subscription-status  - latest subscription for an email
"""

from flask import Blueprint, jsonify, request

from telehealth.catalog import PRODUCTS
from telehealth.errors import ValidationError, json_object
from telehealth.services import reporting_service
from telehealth.services.stripe_service import create_checkout_session, create_portal_session

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


@checkout_bp.route("/products")
def products():
    return jsonify({"products": PRODUCTS})


@checkout_bp.route("/checkout", methods=["POST"])
def checkout():
    """Start a subscription checkout for {email, productType, planType}."""
    data = json_object(request.get_json(silent=True))
    session = create_checkout_session(
        email=data.get("email"),
        product_type=data.get("productType"),
        plan_type=data.get("planType"),
        first_name=data.get("firstName"),
        last_name=data.get("lastName"),
    )
    return jsonify(session)


@checkout_bp.route("/customer-portal", methods=["POST"])
def customer_portal():
    data = json_object(request.get_json(silent=True))
    if not data.get("email"):
        raise ValidationError("Email required")
    return jsonify({"url": create_portal_session(data["email"])})


@checkout_bp.route("/subscription-status")
def subscription_status():
    email = request.args.get("email")
    if not email:
        raise ValidationError("Email required")
    return jsonify(reporting_service.subscription_status_for_email(email))
