"""
Probes for the load balancer and the ops dashboard.

    GET /api/v1/health        — process is up
    GET /api/v1/health/live   — database round-trip plus sync outbox backlog

The outbox never fails the probe: a backlog only means the external sheet
is behind, and edits keep working.
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from workplan.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def ready():
    return jsonify({"status": "ok", "app": "Work Plan Tracker"}), 200


def _database_check():
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as exc:
        logger.error("Liveness: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {"database": _database_check()}
    outbox = current_app.extensions.get("sync_outbox")
    if outbox is not None:
        backlog = outbox.status()
        checks["sync_outbox"] = {
            "status": "error" if backlog["last_errors"] else "ok",
            "pending_initiatives": backlog["pending_initiatives"],
            "pending_changes": backlog["pending_changes"],
        }

    healthy = checks["database"]["status"] == "ok"
    return jsonify({"status": "ok" if healthy else "degraded", "checks": checks}), 200 if healthy else 503
