"""Admin activity model.

Logs admin actions (subscription cancellation, order fulfillment
updates) for the dashboard activity feed and debugging.
"""

from telehealth.extensions import db


class AdminActivity(db.Model):
    __tablename__ = "admin_activity"

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(
        db.Integer, db.ForeignKey("customers.id"), nullable=True
    )
    action = db.Column(db.String(100), nullable=False)  # e.g. "cancel_subscription"
    target_type = db.Column(db.String(50))
    target_id = db.Column(db.Integer)
    details = db.Column(db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    admin = db.relationship("Customer")

    def __repr__(self):
        return f"<AdminActivity {self.action} {self.target_type}:{self.target_id}>"
