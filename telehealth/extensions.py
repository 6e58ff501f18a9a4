"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask import jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit - we apply per-route
    storage_uri="memory://",
)


@login_manager.user_loader
def load_user(user_id):
    """Load customer by ID from session. Imports lazily to avoid circular deps."""
    from telehealth.models.customer import Customer

    return db.session.get(Customer, int(user_id))


@login_manager.request_loader
def load_user_from_request(request):
    """Resolve `Authorization: Bearer <jwt>` to a Customer, or None."""
    from telehealth.services.auth_service import user_from_auth_header

    return user_from_auth_header(request.headers.get("Authorization"))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Authentication required"}), 401
