import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from telehealth.config import config_by_name
from telehealth.errors import ApiError
from telehealth.extensions import db, migrate, login_manager, limiter

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from telehealth import models  # noqa: F401

    # --- Register blueprints ---
    from telehealth.blueprints.public import public_bp
    from telehealth.blueprints.checkout import checkout_bp
    from telehealth.blueprints.admin import admin_bp
    from telehealth.blueprints.intake import intake_bp
    from telehealth.blueprints.webhooks import webhooks_bp

    app.register_blueprint(public_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(intake_bp)
    app.register_blueprint(webhooks_bp)

    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_error_handlers(app):
    """Render every error as {"error": message}."""

    @app.errorhandler(ApiError)
    def api_error(e):
        if e.status_code >= 500:
            logger.error(f"{type(e).__name__}: {e.message}")
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def unhandled_error(e):
        db.session.rollback()
        logger.error(f"Unhandled error: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default=None, help="Admin email (default: ADMIN_EMAIL)")
    @click.option("--password", default=None, help="Admin password (default: ADMIN_PASSWORD)")
    def seed_admin(email, password):
        """Create the admin account, or reset its password if it exists.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from telehealth.models.customer import Customer, normalize_email

        email = normalize_email(email or app.config.get("ADMIN_EMAIL"))
        password = password or app.config.get("ADMIN_PASSWORD")
        if not email or not password:
            raise click.UsageError(
                "Pass --email/--password or set ADMIN_EMAIL and ADMIN_PASSWORD."
            )

        admin = Customer.query.filter_by(email=email).first()
        if admin:
            admin.role = "admin"
            admin.password_hash = generate_password_hash(password)
            click.echo(f"Updated existing account as admin: {email}")
        else:
            admin = Customer(
                email=email,
                first_name="Admin",
                role="admin",
                password_hash=generate_password_hash(password),
            )
            db.session.add(admin)
            click.echo(f"Created admin user: {email}")
        db.session.commit()

    @app.cli.command("verify-stripe-prices")
    def verify_stripe_prices():
        """Verify configured Stripe price IDs exist and are usable (same mode as key).

        Run with prod env vars to confirm Live prices; run with test vars for Test mode.
        """
        import stripe as _stripe

        from telehealth.services.stripe_events import field

        api_key = app.config.get("STRIPE_SECRET_KEY")
        if not api_key:
            click.echo("ERROR: STRIPE_SECRET_KEY is not set.")
            return
        key_mode = "Live" if api_key.startswith("sk_live_") else "Test"
        click.echo(f"Stripe key mode: {key_mode}")
        click.echo("")

        _stripe.api_key = api_key

        for label, price_id in sorted(app.config["STRIPE_PRICES"].items()):
            if not price_id:
                click.echo(f"  {label}: (not set)")
                continue
            try:
                price = _stripe.Price.retrieve(price_id)
            except _stripe.InvalidRequestError as e:
                click.echo(f"  {label}: {price_id}")
                click.echo(f"    ERROR: {e}")
                continue

            active = field(price, "active")
            livemode = field(price, "livemode")
            amount = (field(price, "unit_amount") or 0) / 100
            click.echo(f"  {label}: {price_id}")
            click.echo(
                f"    active={active}, livemode={livemode}, "
                f"amount=${amount:.2f}"
            )
            if livemode is True and key_mode != "Live":
                click.echo("    WARNING: This price is Live but your key is Test.")
            elif livemode is False and key_mode == "Live":
                click.echo("    WARNING: This price is Test but your key is Live.")

    @app.cli.command("replay-webhooks")
    @click.option("--limit", default=100, show_default=True, help="Max events to replay.")
    def replay_webhooks(limit):
        """Re-apply stored webhook events that were logged but never processed.

        Usage:
            flask replay-webhooks
            flask replay-webhooks --limit 500
        """
        from telehealth.services.stripe_service import replay_unprocessed_events

        counts = replay_unprocessed_events(limit=limit)
        click.echo(
            "Replayed webhook events: "
            + ", ".join(f"{outcome}={n}" for outcome, n in counts.items())
        )
