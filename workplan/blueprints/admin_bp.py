"""
Work Plan Tracker
Admin panel blueprint — users, permission matrix, capacity settings.

Every endpoint requires the admin-panel gate (``accessAdmin == yes`` or the
root identity).

Endpoints:
    GET    /api/v1/admin/users                 — list users
    POST   /api/v1/admin/users                 — create user (duplicate e-mail → 200, existing user)
    PUT    /api/v1/admin/users/<id>            — update user
    DELETE /api/v1/admin/users/<id>            — delete user (not yourself)
    POST   /api/v1/admin/users/import          — import pre-validated user rows

    GET    /api/v1/admin/config                — full AppConfig
    GET    /api/v1/admin/permissions           — role permission matrix
    POST   /api/v1/admin/permissions/cycle     — advance one cell {role, key}
    PUT    /api/v1/admin/permissions           — set one cell {role, key, value}
    PUT    /api/v1/admin/capacity/<owner_id>   — {capacity, adjustment, buffer}
    PUT    /api/v1/admin/bau-buffer            — {value}
"""

import functools
import logging

from flask import Blueprint, g, jsonify, request

from workplan.blueprints import current_resolver
from workplan.middleware.current_user import require_user
from workplan.services import config_service, user_service
from workplan.utils.errors import E, api_error
from workplan.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


def admin_required(f):
    """Decorator: acting user must pass the admin-panel gate."""

    @functools.wraps(f)
    @require_user
    def decorated(*args, **kwargs):
        current_resolver().check_admin(g.current_user)
        return f(*args, **kwargs)

    return decorated


def _actor_label():
    return g.current_user.email or g.current_user.id


# ── Users ────────────────────────────────────────────────────────────────────

@admin_bp.route("/users", methods=["GET"])
@admin_required
def list_users():
    users = user_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)})


@admin_bp.route("/users", methods=["POST"])
@admin_required
def create_user():
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "email and name are required")

    user, created = user_service.create_user(
        email=data["email"], name=data["name"], role=data.get("role") or "Team Lead",
        avatar=data.get("avatar") or "", team=data.get("team"), user_id=data.get("id"),
        updated_by=_actor_label(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({**user.to_dict(), "created": created}), 201 if created else 200


@admin_bp.route("/users/<user_id>", methods=["PUT"])
@admin_required
def update_user(user_id):
    data = request.get_json(silent=True) or {}
    allowed = {k: v for k, v in data.items() if k in ("name", "email", "role", "avatar", "team")}
    user = user_service.update_user(user_id, **allowed)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(user.to_dict())


@admin_bp.route("/users/<user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id):
    user = user_service.delete_user(user_id, acting_user_id=g.current_user.id, updated_by=_actor_label())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": user.id})


@admin_bp.route("/users/import", methods=["POST"])
@admin_required
def import_users():
    data = request.get_json(silent=True) or {}
    rows = data.get("rows")
    if not isinstance(rows, list):
        return api_error(E.VALIDATION_REQUIRED, "rows must be a list")
    result = user_service.import_users(rows, updated_by=_actor_label())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 201 if result["created"] else 200


# ── Config & permissions ─────────────────────────────────────────────────────

@admin_bp.route("/config", methods=["GET"])
@admin_required
def get_config():
    return jsonify(config_service.load_config().to_dict())


@admin_bp.route("/permissions", methods=["GET"])
@admin_required
def get_permissions():
    return jsonify(config_service.load_config().to_dict()["rolePermissions"])


@admin_bp.route("/permissions/cycle", methods=["POST"])
@admin_required
def cycle_permission():
    data = request.get_json(silent=True) or {}
    if not data.get("role") or not data.get("key"):
        return api_error(E.VALIDATION_REQUIRED, "role and key are required")
    config = config_service.cycle_permission(data["role"], data["key"], updated_by=_actor_label())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(config.to_dict()["rolePermissions"])


@admin_bp.route("/permissions", methods=["PUT"])
@admin_required
def set_permission():
    data = request.get_json(silent=True) or {}
    if not data.get("role") or not data.get("key") or "value" not in data:
        return api_error(E.VALIDATION_REQUIRED, "role, key and value are required")
    config = config_service.set_permission(data["role"], data["key"], data["value"],
                                           updated_by=_actor_label())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(config.to_dict()["rolePermissions"])


@admin_bp.route("/capacity/<owner_id>", methods=["PUT"])
@admin_required
def set_capacity(owner_id):
    data = request.get_json(silent=True) or {}
    try:
        values = {k: float(data[k]) for k in ("capacity", "adjustment", "buffer") if data.get(k) is not None}
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "capacity, adjustment and buffer must be numbers")
    if not values:
        return api_error(E.VALIDATION_REQUIRED, "capacity, adjustment or buffer is required")

    config = config_service.set_capacity(owner_id, updated_by=_actor_label(), **values)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(config.to_dict())


@admin_bp.route("/bau-buffer", methods=["PUT"])
@admin_required
def set_bau_buffer():
    data = request.get_json(silent=True) or {}
    try:
        value = float(data.get("value"))
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "value must be a number")
    config = config_service.set_bau_buffer_suggestion(value, updated_by=_actor_label())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(config.to_dict())
