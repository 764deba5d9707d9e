"""
Work Plan Tracker
Initiative blueprint — initiatives, subtasks, comments, trash, import/export.

Endpoints summary:
    INITIATIVE  /api/v1/initiatives                         GET, POST
                /api/v1/initiatives/<id>                    GET, PATCH, DELETE
                /api/v1/initiatives/<id>/restore            POST
                /api/v1/initiatives/trash                   GET
                /api/v1/initiatives/hard-delete             POST   (admin)
                /api/v1/initiatives/export                  GET
                /api/v1/initiatives/import                  POST

    TASK        /api/v1/initiatives/<id>/tasks              POST
                /api/v1/initiatives/<id>/tasks/<task_id>    PATCH, DELETE

    COMMENT     /api/v1/initiatives/<id>/comments           GET, POST

PATCH bodies carry one field at a time (inline editing):
    {"field": "eta", "value": "2026-05-01", "version": 3,
     "trade_off": {"target_initiative_id": "...", "field": "priority", "new_value": "P2"}}
"""

import logging

from flask import Blueprint, g, jsonify, request

from workplan.blueprints import current_engine, paginate_query
from workplan.middleware.current_user import require_user
from workplan.models.auth import User
from workplan.models.initiative import Initiative
from workplan.services import initiative_store
from workplan.services.mutation_engine import TradeOffAction
from workplan.utils.errors import E, api_error
from workplan.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

initiative_bp = Blueprint("initiatives", __name__, url_prefix="/api/v1")


# ── Helpers ──────────────────────────────────────────────────────────────────

def _not_found(kind="Initiative"):
    return api_error(E.NOT_FOUND, f"{kind} not found")


def _stale_version(initiative, data):
    """409 response when the client edited an older version, else None."""
    version = data.get("version")
    if version is None:
        return None
    try:
        version = int(version)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "version must be an integer")
    if version != initiative.version_id:
        return api_error(
            E.CONFLICT_STALE,
            "This item was changed by someone else. Reload and try again.",
            details={"current_version": initiative.version_id},
        )
    return None


def _trade_off(data):
    raw = data.get("trade_off") or data.get("tradeOffAction")
    if not raw:
        return None
    return TradeOffAction(
        target_initiative_id=raw.get("target_initiative_id") or raw.get("targetInitiativeId"),
        field=raw.get("field"),
        new_value=raw.get("new_value", raw.get("value")),
    )


def _committed(payload, status=200):
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(payload), status


# ═══════════════════════════════════════════════════════════════════════════
#  INITIATIVES
# ═══════════════════════════════════════════════════════════════════════════

@initiative_bp.route("/initiatives", methods=["GET"])
def list_initiatives():
    owner_ids = request.args.getlist("owner_id")
    q = initiative_store.list_active(owner_ids or None)

    status = request.args.get("status")
    if status:
        q = q.filter(Initiative.status == status)
    quarter = request.args.get("quarter")
    if quarter:
        q = q.filter(Initiative.quarter == quarter)
    work_type = request.args.get("work_type")
    if work_type:
        q = q.filter(Initiative.work_type == work_type)

    items, total = paginate_query(q)
    return jsonify({"items": [i.to_dict() for i in items], "total": total})


@initiative_bp.route("/initiatives", methods=["POST"])
@require_user
def create_initiative():
    data = request.get_json(silent=True) or {}
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")

    initiative = current_engine().create_initiative(data, actor=g.current_user)
    return _committed(initiative.to_dict(), 201)


@initiative_bp.route("/initiatives/<initiative_id>", methods=["GET"])
def get_initiative(initiative_id):
    initiative = initiative_store.get(initiative_id)
    if initiative is None:
        return _not_found()
    include_history = request.args.get("history", "").lower() in ("1", "true", "yes")
    return jsonify(initiative.to_dict(include_history=include_history))


@initiative_bp.route("/initiatives/<initiative_id>", methods=["PATCH"])
@require_user
def inline_update(initiative_id):
    data = request.get_json(silent=True) or {}
    field = data.get("field")
    if not field or "value" not in data:
        return api_error(E.VALIDATION_REQUIRED, "field and value are required")

    initiative = initiative_store.get(initiative_id, include_deleted=False)
    if initiative is None:
        return _not_found()
    err = _stale_version(initiative, data)
    if err:
        return err

    result = current_engine().inline_update_initiative(
        initiative_id, field, data["value"],
        actor=g.current_user,
        suppress_notification=bool(data.get("suppress_notification", False)),
        audit_fields=data.get("audit_fields"),
        trade_off_action=_trade_off(data),
        risk_action_log=data.get("risk_action_log"),
    )
    if result is None:
        return _not_found()
    return _committed(result.to_dict())


@initiative_bp.route("/initiatives/<initiative_id>", methods=["DELETE"])
@require_user
def soft_delete_initiative(initiative_id):
    result = current_engine().soft_delete_initiative(initiative_id, actor=g.current_user)
    if result is None:
        return _not_found()
    return _committed(result.to_dict())


@initiative_bp.route("/initiatives/<initiative_id>/restore", methods=["POST"])
@require_user
def restore_initiative(initiative_id):
    result = current_engine().restore_initiative(initiative_id, actor=g.current_user)
    if result is None:
        return _not_found()
    return _committed(result.to_dict())


@initiative_bp.route("/initiatives/trash", methods=["GET"])
def list_trash():
    items, total = paginate_query(initiative_store.list_deleted())
    return jsonify({"items": [i.to_dict() for i in items], "total": total})


@initiative_bp.route("/initiatives/hard-delete", methods=["POST"])
@require_user
def hard_delete():
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids:
        return api_error(E.VALIDATION_REQUIRED, "ids must be a non-empty list")
    removed = current_engine().hard_delete_initiatives(ids, actor=g.current_user)
    return _committed({"deleted": removed, "count": len(removed)})


@initiative_bp.route("/initiatives/export", methods=["GET"])
def export_initiatives():
    """Read-only snapshot of live initiatives with their change history."""
    include_deleted = request.args.get("include_deleted", "").lower() in ("1", "true", "yes")
    q = Initiative.query if include_deleted else initiative_store.list_active()
    items = [i.to_dict(include_history=True) for i in q.all()]
    return jsonify({"items": items, "total": len(items)})


@initiative_bp.route("/initiatives/import", methods=["POST"])
@require_user
def import_initiatives():
    data = request.get_json(silent=True) or {}
    rows = data.get("rows")
    if not isinstance(rows, list):
        return api_error(E.VALIDATION_REQUIRED, "rows must be a list")
    result = current_engine().import_rows(rows, actor=g.current_user)
    return _committed(result, 201 if result["created"] else 200)


# ═══════════════════════════════════════════════════════════════════════════
#  TASKS
# ═══════════════════════════════════════════════════════════════════════════

@initiative_bp.route("/initiatives/<initiative_id>/tasks", methods=["POST"])
@require_user
def add_task(initiative_id):
    data = request.get_json(silent=True) or {}
    initiative, task = current_engine().add_task(initiative_id, data, actor=g.current_user)
    if initiative is None:
        return _not_found()
    return _committed({"task": task, "initiative": initiative.to_dict()}, 201)


@initiative_bp.route("/initiatives/<initiative_id>/tasks/<task_id>", methods=["PATCH"])
@require_user
def update_task(initiative_id, task_id):
    data = request.get_json(silent=True) or {}
    field = data.get("field")
    if not field or "value" not in data:
        return api_error(E.VALIDATION_REQUIRED, "field and value are required")

    result = current_engine().update_task(initiative_id, task_id, field, data["value"], actor=g.current_user)
    if result is None:
        return _not_found("Task")
    return _committed(result.to_dict())


@initiative_bp.route("/initiatives/<initiative_id>/tasks/<task_id>", methods=["DELETE"])
@require_user
def delete_task(initiative_id, task_id):
    result = current_engine().delete_task(initiative_id, task_id, actor=g.current_user)
    if result is None:
        return _not_found("Task")
    return _committed(result.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  COMMENTS
# ═══════════════════════════════════════════════════════════════════════════

@initiative_bp.route("/initiatives/<initiative_id>/comments", methods=["GET"])
def list_comments(initiative_id):
    initiative = initiative_store.get(initiative_id)
    if initiative is None:
        return _not_found()
    comments = list(initiative.comments or [])
    return jsonify({"items": comments, "total": len(comments)})


@initiative_bp.route("/initiatives/<initiative_id>/comments", methods=["POST"])
@require_user
def add_comment(initiative_id):
    data = request.get_json(silent=True) or {}
    if not (data.get("text") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "text is required")

    comment, notifications = current_engine().add_comment(
        initiative_id, data["text"], actor=g.current_user, users=User.query.all()
    )
    if comment is None:
        return _not_found()
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "comment": comment,
        "notifications": [n.to_dict() for n in notifications],
    }), 201
