"""
Work Plan Tracker
Capacity metrics blueprint.

Endpoints:
    GET /api/v1/metrics/capacity               — team metrics (?owner_id=... repeatable)
    GET /api/v1/metrics/capacity/<owner_id>    — one owner's utilization report
    GET /api/v1/metrics/sync                   — sync outbox status

Without ``owner_id`` filters the team is every owner that has a capacity
entry in the AppConfig.

Effort figures are also reported in days and hours using the app's
``DAYS_PER_WEEK`` setting.
"""

from flask import Blueprint, current_app, jsonify, request

from workplan.services import capacity, config_service, initiative_store

metrics_bp = Blueprint("metrics", __name__, url_prefix="/api/v1/metrics")


@metrics_bp.route("/capacity", methods=["GET"])
def team_capacity():
    config = config_service.load_config()
    owner_ids = request.args.getlist("owner_id") or sorted(config.team_capacities.keys())
    initiatives = initiative_store.list_active(owner_ids).all()
    return jsonify(capacity.team_metrics(
        owner_ids, initiatives, config, current_app.config["DAYS_PER_WEEK"]
    ))


@metrics_bp.route("/capacity/<owner_id>", methods=["GET"])
def owner_capacity(owner_id):
    config = config_service.load_config()
    initiatives = initiative_store.list_active([owner_id]).all()
    return jsonify(capacity.owner_report(owner_id, initiatives, config, current_app.config["DAYS_PER_WEEK"]))


@metrics_bp.route("/sync", methods=["GET"])
def sync_status():
    outbox = current_app.extensions.get("sync_outbox")
    return jsonify(outbox.status() if outbox else {})
