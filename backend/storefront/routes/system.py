# backend/storefront/routes/system.py
"""
System health endpoint.

Checks the database and that the external collaborators (payment gateway,
mailer) are registered and configured.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import User, Item, ReconciliationRecord, RECONCILIATION_PENDING
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        item_count = db.session.query(Item).count()
        pending = db.session.query(ReconciliationRecord).filter_by(status=RECONCILIATION_PENDING).count()

        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "items": item_count,
                "pending_reconciliations": pending,
            }
        }
        if pending:
            result["status"] = "degraded"
            result["warning"] = f"{pending} charge(s) awaiting reconciliation"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_collaborators_health() -> dict:
    gateway = current_app.extensions.get("payment_gateway")
    mailer = current_app.extensions.get("mailer")
    missing = [name for name, obj in (("payment_gateway", gateway), ("mailer", mailer)) if obj is None]
    if missing:
        return {"status": "unhealthy", "error": f"Not configured: {', '.join(missing)}"}
    if getattr(gateway, "api_key", "x") == "":
        return {"status": "degraded", "warning": "STRIPE_SECRET_KEY is not set"}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    collaborators_health = check_collaborators_health()

    all_checks = [database_health, collaborators_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "collaborators": collaborators_health,
        }
    }

    return response, http_status
