"""Intake service: saves the pre-checkout intake questionnaire.

The customer row is upserted by email (only fields present in the new
submission overwrite stored values) and every submit is also appended
to intake_submissions as an audit trail.
"""

import logging
from datetime import date

import bleach

from telehealth.errors import ValidationError
from telehealth.extensions import db
from telehealth.models.customer import Customer, normalize_email
from telehealth.models.intake import IntakeSubmission
from telehealth.services import analytics_service

logger = logging.getLogger(__name__)

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
}


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _clean(value):
    """Strip HTML from free-text form input; blank becomes None."""
    if isinstance(value, str):
        value = bleach.clean(value, tags=[], strip=True).strip()
    return value or None


def parse_dob(month, day, year):
    """Build a date from form parts; month may be a name or a number."""
    if not (month and day and year):
        return None
    month_num = MONTHS.get(str(month).strip().lower()) or _to_int(month) or 1
    try:
        return date(int(year), month_num, int(day))
    except (TypeError, ValueError):
        logger.info(f"Ignoring invalid date of birth {year}-{month}-{day}")
        return None


def _profile_from_form(data):
    flagged = data.get("flaggedConditions")
    return {
        "first_name": _clean(data.get("firstName")),
        "last_name": _clean(data.get("lastName")),
        "phone": _clean(data.get("phone")),
        "dob": parse_dob(data.get("dobMonth"), data.get("dobDay"), data.get("dobYear")),
        "sex": _clean(data.get("sex")),
        "height_ft": _to_int(data.get("heightFt")),
        "height_in": _to_int(data.get("heightIn")),
        "weight_lbs": _to_int(data.get("weight")),
        "shipping_street": _clean(data.get("address")),
        "shipping_apt": _clean(data.get("apt")),
        "shipping_city": _clean(data.get("city")),
        "shipping_state": _clean(data.get("state")),
        "shipping_zip": _clean(data.get("zip")),
        "treatment_product": _clean(data.get("treatment")),
        "flagged_conditions": list(flagged) if flagged else None,
        "consents": data.get("consents") or None,
        "visitor_id": _clean(data.get("visitor_id")),
        "utm_source": _clean(data.get("utm_source")),
        "utm_medium": _clean(data.get("utm_medium")),
        "utm_campaign": _clean(data.get("utm_campaign")),
    }


def submit_intake(data, ip_address=None):
    """Save an intake form submission.

    Returns the id of the created or updated customer.
    Raises ValidationError if firstName, lastName or email is missing.
    """
    email = normalize_email(data.get("email"))
    if not email or not _clean(data.get("firstName")) or not _clean(data.get("lastName")):
        raise ValidationError("firstName, lastName, and email are required")

    profile = _profile_from_form(data)
    screening_clear = bool(data.get("screeningClear"))

    customer = Customer.query.filter_by(email=email).first()
    if customer is None:
        customer = Customer(email=email, role="customer", **profile)
        db.session.add(customer)
    else:
        for field, value in profile.items():
            if value is not None:
                setattr(customer, field, value)
    customer.intake_status = "intake_completed"
    customer.screening_clear = screening_clear
    db.session.flush()

    db.session.add(IntakeSubmission(
        customer_id=customer.id,
        email=email,
        screening_clear=screening_clear,
        ip_address=ip_address,
        status="submitted",
        **profile,
    ))
    db.session.commit()

    analytics_service.log_funnel_event(
        profile["visitor_id"] or f"email-{email}",
        "intake_completed",
        {"email": email, "treatment": profile["treatment_product"], "customerId": customer.id},
    )

    logger.info(f"Intake submitted for customer {customer.id}")
    return customer.id


def list_submissions(limit=200):
    return (
        IntakeSubmission.query
        .order_by(IntakeSubmission.created_at.desc(), IntakeSubmission.id.desc())
        .limit(limit)
        .all()
    )
