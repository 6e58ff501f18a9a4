"""
Custom route decorators for access control.

- admin_required: ensures the bearer token resolves to a customer row
  with role="admin".
"""

from functools import wraps

from flask_login import current_user, login_required

from telehealth.errors import ForbiddenError


def admin_required(f):
    """Require a valid token + admin role."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            raise ForbiddenError()
        return f(*args, **kwargs)

    return decorated
