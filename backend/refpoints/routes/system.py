# backend/refpoints/routes/system.py
"""
System health endpoint.

Unauthenticated and tenant-free so load balancers can poll it.
"""

import time
from flask import Blueprint, current_app, jsonify

from ..extensions import NOTIFIER_KEY, BROADCAST_QUEUE_KEY, db
from ..models import Organization

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        org_count = db.session.query(Organization).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"organizations": org_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_messaging_health() -> dict:
    notifier = current_app.extensions.get(NOTIFIER_KEY)
    broadcast_queue = current_app.extensions.get(BROADCAST_QUEUE_KEY)
    return {
        "status": "healthy" if notifier is not None and notifier.connected else "degraded",
        "notifier": type(notifier).__name__ if notifier is not None else None,
        "broadcast_queue_running": bool(broadcast_queue and broadcast_queue.running),
    }


@system_bp.get("/health")
def health():
    database = check_database_health()
    messaging = check_messaging_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "error",
        "checks": {"database": database, "messaging": messaging},
    }
    return jsonify(body), 200 if healthy else 503
