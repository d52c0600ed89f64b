# backend/pos_tracker/routes/system.py
"""
System health endpoint.

Checks the database the tracker runs on. The ledger sheet has its own probe
at /api/cloud/health since an unreachable sheet does not stop stock work.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Terminal, PaymentRecord
from pos_tracker.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        terminal_count = db.session.query(Terminal).count()
        payment_count = db.session.query(PaymentRecord).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "terminals": terminal_count,
                "payments": payment_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database healthy
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
