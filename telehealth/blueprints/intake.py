"""Intake blueprint: /api/intake

Public intake form submission, plus the admin-only submission log.
"""

from flask import Blueprint, jsonify, request

from telehealth.decorators import admin_required
from telehealth.errors import json_object
from telehealth.extensions import limiter
from telehealth.services import analytics_service, intake_service

intake_bp = Blueprint("intake", __name__, url_prefix="/api/intake")


@intake_bp.route("", methods=["POST"])
@limiter.limit("10 per hour")
def submit():
    data = json_object(request.get_json(silent=True))
    customer_id = intake_service.submit_intake(
        data, ip_address=analytics_service.client_ip(request)
    )
    return jsonify({"success": True, "customerId": customer_id})


@intake_bp.route("/submissions")
@admin_required
def submissions():
    rows = intake_service.list_submissions()
    return jsonify({"submissions": [row.to_dict() for row in rows]})
