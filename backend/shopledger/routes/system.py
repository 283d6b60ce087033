# backend/shopledger/routes/system.py
"""System health endpoint."""

import time
from flask import Blueprint, current_app
from sqlalchemy import func

from ..extensions import db
from ..models import OutboxEvent, Product, PurchaseBatch
from ..models.notifications import OUTBOX_FAILED, OUTBOX_PENDING
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(func.count(Product.id)).scalar()
        batch_count = db.session.query(func.count(PurchaseBatch.id)).scalar()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products": product_count, "purchases": batch_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_outbox_health() -> dict:
    """Undelivered side effects are a warning, not an outage."""
    try:
        pending = db.session.query(func.count(OutboxEvent.id)).filter(OutboxEvent.status == OUTBOX_PENDING).scalar()
        failed = db.session.query(func.count(OutboxEvent.id)).filter(OutboxEvent.status == OUTBOX_FAILED).scalar()
        status = "degraded" if failed else "healthy"
        return {"status": status, "details": {"pending": pending, "failed": failed}}
    except Exception:
        current_app.logger.exception("Outbox health check failed")
        return {"status": "unhealthy", "error": "Outbox error"}


@system_bp.get("/health")
def health():
    """
    200 when healthy or degraded, 503 when the database is unreachable.
    """
    checks = {"database": check_database_health(), "outbox": check_outbox_health()}
    statuses = {c["status"] for c in checks.values()}

    if "unhealthy" in statuses:
        overall, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return {"status": overall, "timestamp": to_utc_z(utcnow()), "checks": checks}, http_status
