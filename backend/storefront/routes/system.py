"""
System health endpoint.
"""

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import DocumentSequence, Order, Stock
from ..time_utils import to_utc_z, utcnow


system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        order_count = db.session.query(Order).count()
        stock_rows = db.session.query(Stock).count()
        sequence_ready = db.session.get(DocumentSequence, "ORDER") is not None
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders": order_count,
                "stock_rows": stock_rows,
                "order_sequence_initialized": sequence_ready,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503
