"""Analytics service: best-effort visitor tracking.

Nothing here may fail a request: geolocation lookups and inserts are
wrapped, logged at debug level and otherwise ignored.
"""

import logging
import time
from datetime import datetime, timedelta, timezone

import requests
from flask import current_app

from telehealth.extensions import db
from telehealth.models.analytics import FunnelEvent, PageView

logger = logging.getLogger(__name__)

LOCAL_IPS = ("127.0.0.1", "::1")


def client_ip(request):
    """First X-Forwarded-For hop, else the socket address."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr


def lookup_geo(ip):
    """Resolve an IP to {lat, lng, city, state, country}, or None."""
    if not ip or ip in LOCAL_IPS:
        return None

    url = current_app.config["GEOIP_LOOKUP_URL"].format(ip=ip)
    try:
        resp = requests.get(url, timeout=current_app.config["GEOIP_TIMEOUT"])
        geo = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.debug(f"Geo lookup failed for {ip}: {e}")
        return None

    if geo.get("status") != "success":
        return None
    return {
        "lat": geo.get("lat"),
        "lng": geo.get("lon"),
        "city": geo.get("city"),
        "state": geo.get("regionName"),
        "country": geo.get("country"),
    }


def _safe_commit(obj):
    try:
        db.session.add(obj)
        db.session.commit()
        return True
    except Exception as e:
        db.session.rollback()
        logger.debug(f"Analytics insert dropped ({obj!r}): {e}")
        return False


def log_funnel_event(visitor_id, event_type, metadata=None):
    return _safe_commit(FunnelEvent(
        visitor_id=visitor_id,
        event_type=event_type,
        metadata_=metadata,
    ))


def track(data, ip):
    """Record a page view and/or a funnel event from a /api/track payload."""
    page = data.get("page")
    event = data.get("event")
    visitor_id = data.get("visitor_id") or ip or f"anon-{int(time.time() * 1000)}"

    if page:
        geo = {
            "lat": data.get("lat"),
            "lng": data.get("lng"),
            "city": data.get("city"),
            "state": data.get("state"),
            "country": data.get("country"),
        }
        # Client didn't send coordinates; try a server-side lookup
        if not geo["lat"]:
            geo = lookup_geo(ip) or geo

        _safe_commit(PageView(
            visitor_id=visitor_id,
            page_path=str(page)[:500],
            referrer=(data.get("referrer") or None),
            ip_address=ip,
            **geo,
        ))
        log_funnel_event(visitor_id, "page_view")

    if event:
        log_funnel_event(visitor_id, str(event)[:50], data.get("metadata"))


def _distinct_visitors_since(since):
    return (
        db.session.query(db.func.count(db.distinct(PageView.visitor_id)))
        .filter(PageView.viewed_at >= since)
        .scalar()
    ) or 0


def visitors_today():
    now = datetime.now(timezone.utc)
    return _distinct_visitors_since(now.replace(hour=0, minute=0, second=0, microsecond=0))


def visitors_this_month():
    now = datetime.now(timezone.utc)
    return _distinct_visitors_since(
        now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    )


def live_stats():
    """Visitors in the last 5 minutes, today, and their top pages."""
    since = datetime.now(timezone.utc) - timedelta(minutes=5)
    count = db.func.count(PageView.id)
    pages = (
        db.session.query(PageView.page_path, count)
        .filter(PageView.viewed_at >= since)
        .group_by(PageView.page_path)
        .order_by(count.desc())
        .limit(8)
        .all()
    )
    return {
        "activeVisitors": _distinct_visitors_since(since),
        "todayVisitors": visitors_today(),
        "pages": [{"page": path, "count": n} for path, n in pages],
    }
