import os


def _price_map():
    """Stripe price IDs keyed by "<product_type>_<plan_type>"."""
    return {
        "semaglutide_monthly": os.environ.get("STRIPE_PRICE_SEMA_MONTHLY"),
        "semaglutide_3month": os.environ.get("STRIPE_PRICE_SEMA_3MONTH"),
        "semaglutide_6month": os.environ.get("STRIPE_PRICE_SEMA_6MONTH"),
        "tirzepatide_monthly": os.environ.get("STRIPE_PRICE_TIRZ_MONTHLY"),
        "tirzepatide_3month": os.environ.get("STRIPE_PRICE_TIRZ_3MONTH"),
        "tirzepatide_6month": os.environ.get("STRIPE_PRICE_TIRZ_6MONTH"),
    }


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Render, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRICES = _price_map()

    # --- Admin tokens ---
    JWT_SECRET = os.environ.get("JWT_SECRET")
    JWT_EXPIRES_DAYS = int(os.environ.get("JWT_EXPIRES_DAYS", 7))

    # --- Brand ---
    BRAND_NAME = os.environ.get("BRAND_NAME", "Telehealth Backend")
    BRAND_DOMAIN = os.environ.get("BRAND_DOMAIN", "http://localhost:3000")

    # --- MDI (clinical partner) ---
    MDI_INTAKE_URL = os.environ.get("MDI_INTAKE_URL")
    MDI_API_KEY = os.environ.get("MDI_API_KEY")

    # --- Visitor geolocation (best effort) ---
    GEOIP_LOOKUP_URL = os.environ.get(
        "GEOIP_LOOKUP_URL",
        "http://ip-api.com/json/{ip}?fields=status,city,regionName,country,lat,lon",
    )
    GEOIP_TIMEOUT = float(os.environ.get("GEOIP_TIMEOUT", 2.0))

    # --- Seed admin ---
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Rate limiting ---
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "JWT_SECRET",
            "BRAND_DOMAIN",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing: in-memory SQLite, fake Stripe credentials."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_PRICES = {
        "semaglutide_monthly": "price_sema_monthly_test",
        "semaglutide_3month": "price_sema_3month_test",
        "semaglutide_6month": "price_sema_6month_test",
        "tirzepatide_monthly": "price_tirz_monthly_test",
        "tirzepatide_3month": "price_tirz_3month_test",
        "tirzepatide_6month": None,  # deliberately unconfigured
    }
    JWT_SECRET = "test-jwt-secret-at-least-32-bytes-long"
    BRAND_NAME = "Test Health"
    BRAND_DOMAIN = "https://test.example.com"
    MDI_INTAKE_URL = "https://intake.example.com/start"
    ADMIN_EMAIL = None
    ADMIN_PASSWORD = None
    RATELIMIT_ENABLED = False  # disable rate limiting in tests

    @staticmethod
    def validate():
        """Skip validation in test mode: everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production on Render."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
