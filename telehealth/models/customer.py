"""Customer model.

One row per person, keyed by lower-cased email. Holds the Stripe
linkage (stripe_customer_id, write-once), intake/profile fields and the
shipping address used for medication delivery. Admins live in the same
table with role="admin" and a password hash.
"""

from flask_login import UserMixin

from telehealth.extensions import db


def normalize_email(email):
    """Lower-case and trim an email address ("" for None or non-strings)."""
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


class Customer(UserMixin, db.Model):
    __tablename__ = "customers"

    ROLES = ["customer", "admin"]

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    phone = db.Column(db.String(20))
    dob = db.Column(db.Date)
    sex = db.Column(db.String(20))
    height_ft = db.Column(db.Integer)
    height_in = db.Column(db.Integer)
    weight_lbs = db.Column(db.Integer)

    # --- Shipping ---
    shipping_street = db.Column(db.String(255))
    shipping_apt = db.Column(db.String(100))
    shipping_city = db.Column(db.String(100))
    shipping_state = db.Column(db.String(20))
    shipping_zip = db.Column(db.String(10))

    # --- External linkage ---
    stripe_customer_id = db.Column(
        db.String(255), unique=True, nullable=True
    )  # set once, never reassigned
    mdi_patient_id = db.Column(db.String(255))

    # --- Intake ---
    treatment_product = db.Column(db.String(50))
    intake_status = db.Column(db.String(30), default="pending")
    screening_clear = db.Column(db.Boolean, default=False)
    flagged_conditions = db.Column(db.JSON)  # list of condition names
    consents = db.Column(db.JSON)

    # --- Attribution ---
    utm_source = db.Column(db.String(255))
    utm_medium = db.Column(db.String(255))
    utm_campaign = db.Column(db.String(255))
    visitor_id = db.Column(db.String(255))

    role = db.Column(db.String(20), nullable=False, default="customer")
    password_hash = db.Column(db.String(255))

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    subscriptions = db.relationship(
        "Subscription", back_populates="customer", lazy="dynamic"
    )
    orders = db.relationship("Order", back_populates="customer", lazy="dynamic")

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def full_name(self):
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def shipping_summary(self):
        parts = [
            self.shipping_street,
            self.shipping_city,
            self.shipping_state,
            self.shipping_zip,
        ]
        return ", ".join(p for p in parts if p)

    def __repr__(self):
        return f"<Customer {self.email} ({self.role})>"
