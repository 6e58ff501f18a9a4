"""Reporting service: read-only aggregates over the billing ledger.

Feeds the admin dashboard and list views. Nothing here writes.
Day bucketing happens in Python so the same code runs on PostgreSQL
and SQLite.
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_
from sqlalchemy.orm import joinedload

from telehealth.extensions import db
from telehealth.models.billing import Order, Subscription
from telehealth.models.customer import Customer, normalize_email
from telehealth.services import analytics_service


def _iso(value):
    return value.isoformat() if value else None


def _month_start(now):
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _count(query):
    return query.count()


def _sum_cents(*criteria):
    return (
        db.session.query(db.func.coalesce(db.func.sum(Order.amount_cents), 0))
        .filter(Order.status == "paid", *criteria)
        .scalar()
    ) or 0


def _active_breakdown(column):
    rows = (
        db.session.query(column, db.func.count(Subscription.id))
        .filter(Subscription.status == "active")
        .group_by(column)
        .all()
    )
    return [{"key": key, "count": n} for key, n in rows]


def revenue_by_day(days):
    """Paid order revenue per day for the last `days` days."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    orders = (
        Order.query
        .filter(Order.status == "paid", Order.created_at >= since)
        .order_by(Order.created_at)
        .all()
    )
    buckets = OrderedDict()
    for order in orders:
        day = order.created_at.date().isoformat()
        bucket = buckets.setdefault(day, {"date": day, "revenue": 0, "orders": 0})
        bucket["revenue"] += order.amount_cents
        bucket["orders"] += 1
    return list(buckets.values())


def dashboard_stats():
    now = datetime.now(timezone.utc)
    customers = Customer.query.filter_by(role="customer")
    active = Subscription.query.filter_by(status="active")
    mrr = (
        db.session.query(db.func.coalesce(db.func.sum(Subscription.amount_cents), 0))
        .filter(Subscription.status == "active")
        .scalar()
    ) or 0

    by_product = [
        {"product_type": row["key"], "count": row["count"]}
        for row in _active_breakdown(Subscription.product_type)
    ]
    by_plan = [
        {"plan_type": row["key"], "count": row["count"]}
        for row in _active_breakdown(Subscription.plan_type)
    ]

    return {
        "stats": {
            "totalCustomers": _count(customers),
            "activeSubscriptions": _count(active),
            "monthRevenue": _sum_cents(Order.created_at >= _month_start(now)),
            "totalRevenue": _sum_cents(),
            "recentSignups": _count(
                customers.filter(Customer.created_at >= now - timedelta(days=7))
            ),
            "churn30d": _count(
                Subscription.query.filter(
                    Subscription.status == "canceled",
                    Subscription.canceled_at >= now - timedelta(days=30),
                )
            ),
            "mrr": mrr,
            "monthlyVisitors": analytics_service.visitors_this_month(),
            "todayVisitors": analytics_service.visitors_today(),
        },
        "byProduct": by_product,
        "byPlan": by_plan,
        "revenueChart": revenue_by_day(90),
    }


def _paginate(query, page, limit):
    page = max(page, 1)
    limit = min(max(limit, 1), 200)
    return query.limit(limit).offset((page - 1) * limit), page, limit


def _customer_row(c):
    return {
        "id": c.id,
        "email": c.email,
        "name": c.full_name or "—",
        "firstName": c.first_name,
        "lastName": c.last_name,
        "phone": c.phone,
        "dob": _iso(c.dob),
        "sex": c.sex,
        "heightFt": c.height_ft,
        "heightIn": c.height_in,
        "weightLbs": c.weight_lbs,
        "shipping": c.shipping_summary or "—",
        "shippingStreet": c.shipping_street,
        "shippingApt": c.shipping_apt,
        "shippingCity": c.shipping_city,
        "shippingState": c.shipping_state,
        "shippingZip": c.shipping_zip,
        "treatmentProduct": c.treatment_product,
        "intakeStatus": c.intake_status or "pending",
        "screeningClear": c.screening_clear,
        "flaggedConditions": c.flagged_conditions,
        "consents": c.consents,
        "stripeId": c.stripe_customer_id,
        "mdiPatientId": c.mdi_patient_id,
        "visitorId": c.visitor_id,
        "utmSource": c.utm_source,
        "utmMedium": c.utm_medium,
        "utmCampaign": c.utm_campaign,
        "subscriptions": [
            {
                "id": s.id,
                "product_type": s.product_type,
                "plan_type": s.plan_type,
                "status": s.status,
                "amount_cents": s.amount_cents,
                "current_period_end": _iso(s.current_period_end),
            }
            for s in c.subscriptions.order_by(Subscription.id)
        ],
        "createdAt": _iso(c.created_at),
        "updatedAt": _iso(c.updated_at),
    }


def list_customers(page=1, limit=50, search=""):
    query = Customer.query.filter_by(role="customer")
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Customer.email.ilike(like),
            Customer.first_name.ilike(like),
            Customer.last_name.ilike(like),
        ))
    total = query.count()
    query = query.order_by(Customer.created_at.desc(), Customer.id.desc())
    query, page, limit = _paginate(query, page, limit)

    return {
        "customers": [_customer_row(c) for c in query.all()],
        "total": total,
        "page": page,
        "pages": -(-total // limit),
    }


def list_subscriptions(status="all", page=1, limit=50):
    query = Subscription.query.options(joinedload(Subscription.customer))
    if status and status != "all":
        query = query.filter(Subscription.status == status)
    query = query.order_by(Subscription.created_at.desc(), Subscription.id.desc())
    query, _, _ = _paginate(query, page, limit)

    return [
        {
            "id": s.id,
            "customerEmail": s.customer.email,
            "customerName": s.customer.full_name or "—",
            "productType": s.product_type,
            "planType": s.plan_type,
            "status": s.status,
            "amount": s.amount_cents,
            "periodEnd": _iso(s.current_period_end),
            "cancelAt": _iso(s.cancel_at),
            "createdAt": _iso(s.created_at),
        }
        for s in query.all()
    ]


def list_orders(status="all", page=1, limit=50):
    query = Order.query.options(joinedload(Order.customer))
    if status and status != "all":
        query = query.filter(Order.status == status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    query, _, _ = _paginate(query, page, limit)

    return [
        {
            "id": o.id,
            "customerEmail": o.customer.email,
            "customerName": o.customer.full_name or "—",
            "productType": o.product_type,
            "amount": o.amount_cents,
            "status": o.status,
            "pharmacyStatus": o.pharmacy_status,
            "trackingNumber": o.tracking_number,
            "createdAt": _iso(o.created_at),
        }
        for o in query.all()
    ]


def subscription_status_for_email(email):
    """Summary of the customer's most recent subscription."""
    sub = (
        Subscription.query
        .join(Customer)
        .filter(Customer.email == normalize_email(email))
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .first()
    )
    if sub is None:
        return {"active": False}

    return {
        "active": sub.status == "active",
        "status": sub.status,
        "productType": sub.product_type,
        "planType": sub.plan_type,
        "currentPeriodEnd": _iso(sub.current_period_end),
        "cancelAt": _iso(sub.cancel_at),
    }
