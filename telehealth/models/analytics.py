"""Visitor analytics models.

Written best-effort by the public /api/track endpoint. Nothing reads
these for billing decisions.
"""

from telehealth.extensions import db


class PageView(db.Model):
    __tablename__ = "page_views"

    id = db.Column(db.Integer, primary_key=True)
    visitor_id = db.Column(db.String(255), nullable=False, index=True)
    page_path = db.Column(db.String(500), nullable=False)
    referrer = db.Column(db.String(500))
    ip_address = db.Column(db.String(45))
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))
    country = db.Column(db.String(100))
    lat = db.Column(db.Numeric(9, 6))
    lng = db.Column(db.Numeric(9, 6))
    viewed_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now(), index=True
    )

    def __repr__(self):
        return f"<PageView {self.page_path} by {self.visitor_id}>"


class FunnelEvent(db.Model):
    __tablename__ = "funnel_events"

    # page_view | checkout_started | checkout_completed | intake_completed | ...
    id = db.Column(db.Integer, primary_key=True)
    visitor_id = db.Column(db.String(255), nullable=False, index=True)
    event_type = db.Column(db.String(50), nullable=False, index=True)
    metadata_ = db.Column(
        "metadata", db.JSON
    )  # named metadata_ because Declarative reserves `metadata`
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now(), index=True
    )

    def __repr__(self):
        return f"<FunnelEvent {self.event_type} by {self.visitor_id}>"
