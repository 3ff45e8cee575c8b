# backend/timebill/routes/system.py
"""
System health endpoint.

Reports database connectivity for load balancers and deployment checks.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Run ``SELECT 1`` and report the outcome with its round-trip time."""
    started = time.perf_counter()
    report = {"status": "healthy"}
    try:
        db.session.execute(text("SELECT 1"))
    except Exception:
        current_app.logger.exception("Health probe could not reach the database")
        db.session.rollback()
        report = {"status": "unhealthy", "error": "Database error"}
    report["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return report


@system_bp.get("/api/health")
def health_route():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "checked_at": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503
