"""Intake submission model.

An append-only copy of every intake form submit. The customer row holds
the latest merged profile; this table keeps what was actually sent each
time, along with request metadata.
"""

from telehealth.extensions import db


class IntakeSubmission(db.Model):
    __tablename__ = "intake_submissions"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(
        db.Integer,
        db.ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
    )
    email = db.Column(db.String(255), nullable=False, index=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    phone = db.Column(db.String(20))
    dob = db.Column(db.Date)
    sex = db.Column(db.String(20))
    height_ft = db.Column(db.Integer)
    height_in = db.Column(db.Integer)
    weight_lbs = db.Column(db.Integer)
    treatment_product = db.Column(db.String(50))
    screening_clear = db.Column(db.Boolean, default=False)
    flagged_conditions = db.Column(db.JSON)
    consents = db.Column(db.JSON)
    shipping_street = db.Column(db.String(255))
    shipping_apt = db.Column(db.String(100))
    shipping_city = db.Column(db.String(100))
    shipping_state = db.Column(db.String(20))
    shipping_zip = db.Column(db.String(10))
    ip_address = db.Column(db.String(45))
    visitor_id = db.Column(db.String(255))
    utm_source = db.Column(db.String(255))
    utm_medium = db.Column(db.String(255))
    utm_campaign = db.Column(db.String(255))
    status = db.Column(db.String(30), default="submitted", index=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "dob": self.dob.isoformat() if self.dob else None,
            "sex": self.sex,
            "height_ft": self.height_ft,
            "height_in": self.height_in,
            "weight_lbs": self.weight_lbs,
            "treatment_product": self.treatment_product,
            "screening_clear": self.screening_clear,
            "flagged_conditions": self.flagged_conditions,
            "consents": self.consents,
            "shipping_street": self.shipping_street,
            "shipping_apt": self.shipping_apt,
            "shipping_city": self.shipping_city,
            "shipping_state": self.shipping_state,
            "shipping_zip": self.shipping_zip,
            "ip_address": self.ip_address,
            "visitor_id": self.visitor_id,
            "utm_source": self.utm_source,
            "utm_medium": self.utm_medium,
            "utm_campaign": self.utm_campaign,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<IntakeSubmission {self.email} ({self.status})>"
