"""
Work Plan Tracker
Change log blueprint.

Endpoints:
    GET  /api/v1/changes                    — list / filter change records
    GET  /api/v1/changes/latest             — most recent record for a field
    GET  /api/v1/initiatives/<id>/history   — one initiative's history

Change records are read-only over HTTP; only the mutation engine writes them.
"""

from flask import Blueprint, current_app, jsonify, request

from workplan.models.audit import ChangeRecord
from workplan.utils.errors import E, api_error

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/changes", methods=["GET"])
def list_changes():
    """
    Return change records oldest first, with optional filters.

    Query params:
        initiative_id — filter by initiative
        task_id       — filter by subtask
        field         — filter by field label (e.g. "ETA", "Effort")
        changed_by    — filter by actor name
        page          — page number (default 1)
        per_page      — items per page (default 50, max 200)
    """
    q = ChangeRecord.query

    # ── Filters ──────────────────────────────────────────────────────────
    initiative_id = request.args.get("initiative_id")
    if initiative_id:
        q = q.filter(ChangeRecord.initiative_id == initiative_id)

    task_id = request.args.get("task_id")
    if task_id:
        q = q.filter(ChangeRecord.task_id == task_id)

    field = request.args.get("field")
    if field:
        q = q.filter(ChangeRecord.field == field)

    changed_by = request.args.get("changed_by")
    if changed_by:
        q = q.filter(ChangeRecord.changed_by == changed_by)

    # ── Ordering ─────────────────────────────────────────────────────────
    q = q.order_by(ChangeRecord.timestamp.asc(), ChangeRecord.id.asc())

    # ── Pagination ───────────────────────────────────────────────────────
    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))

    paginated = q.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        "changes": [r.to_dict() for r in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    })


@audit_bp.route("/changes/latest", methods=["GET"])
def latest_change():
    initiative_id = request.args.get("initiative_id")
    field = request.args.get("field")
    if not initiative_id or not field:
        return api_error(E.VALIDATION_REQUIRED, "initiative_id and field are required")

    record = current_app.extensions["change_log"].latest(initiative_id, field)
    if record is None:
        return api_error(E.NOT_FOUND, "No change recorded for this field")
    return jsonify(record.to_dict())


@audit_bp.route("/initiatives/<initiative_id>/history", methods=["GET"])
def initiative_history(initiative_id):
    records = current_app.extensions["change_log"].query(initiative_id=initiative_id)
    return jsonify({"items": [r.to_dict() for r in records], "total": len(records)})
