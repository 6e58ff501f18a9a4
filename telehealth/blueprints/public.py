"""Public blueprint: banner, health check, tracking and intake redirect."""

from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request

from telehealth.errors import ApiError, ValidationError, json_object
from telehealth.extensions import limiter
from telehealth.services import analytics_service

public_bp = Blueprint("public", __name__)


@public_bp.route("/")
def index():
    return jsonify({
        "service": f"{current_app.config['BRAND_NAME']} API",
        "status": "running",
    })


@public_bp.route("/api/health")
def health():
    return jsonify({"status": "ok"})


@public_bp.route("/api/track", methods=["POST"])
@limiter.limit("120 per minute")
def track():
    """Record a page view and/or funnel event. Never fails the caller."""
    data = json_object(request.get_json(silent=True))
    if not data.get("page") and not data.get("event"):
        raise ValidationError("page or event required")

    analytics_service.track(data, analytics_service.client_ip(request))
    return jsonify({"ok": True})


@public_bp.route("/api/intake-redirect")
def intake_redirect():
    """Send the visitor to the external medical intake with fields pre-filled."""
    intake_url = current_app.config.get("MDI_INTAKE_URL")
    if not intake_url:
        raise ApiError("Intake not configured")

    params = {
        key: request.args[key]
        for key in ("email", "product")
        if request.args.get(key)
    }
    separator = "&" if "?" in intake_url else "?"
    target = f"{intake_url}{separator}{urlencode(params)}" if params else intake_url
    return redirect(target)
