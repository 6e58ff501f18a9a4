"""Admin authentication: password check + JWT bearer tokens.

Tokens carry {id, email, role, exp} and are signed with JWT_SECRET.
Flask-Login's request_loader (extensions.py) turns a valid
`Authorization: Bearer <token>` header into current_user.
"""

import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app
from werkzeug.security import check_password_hash

from telehealth.errors import AuthError, ValidationError
from telehealth.extensions import db
from telehealth.models.customer import Customer, normalize_email

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def issue_token(customer):
    """Sign a token for `customer`, valid for JWT_EXPIRES_DAYS."""
    expires = datetime.now(timezone.utc) + timedelta(
        days=current_app.config["JWT_EXPIRES_DAYS"]
    )
    payload = {
        "id": customer.id,
        "email": customer.email,
        "role": customer.role,
        "exp": expires,
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=ALGORITHM)


def decode_token(token):
    """Return the token's claims, or None if invalid / expired."""
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[ALGORITHM],
            options={"require": ["exp", "id"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired admin token")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid admin token: {e}")
    return None


def user_from_auth_header(header):
    """Resolve an Authorization header to a Customer, or None."""
    if not header or not header.startswith("Bearer "):
        return None
    claims = decode_token(header[len("Bearer "):].strip())
    if not claims:
        return None
    try:
        return db.session.get(Customer, int(claims["id"]))
    except (TypeError, ValueError):
        return None


def authenticate_admin(email, password):
    """Check admin credentials and return (token, admin).

    Raises ValidationError if either field is missing, AuthError if the
    credentials don't match an admin account.
    """
    if not email or not password or not isinstance(password, str):
        raise ValidationError("Email and password required")

    admin = Customer.query.filter_by(
        email=normalize_email(email), role="admin"
    ).first()
    if admin is None or not admin.password_hash:
        raise AuthError("Invalid credentials")
    if not check_password_hash(admin.password_hash, password):
        raise AuthError("Invalid credentials")

    return issue_token(admin), admin
