"""
Work Plan Tracker
Notification blueprint — the acting user's in-app notifications.

Endpoints:
    GET    /api/v1/notifications                 — list (newest first, ?unread_only=1)
    GET    /api/v1/notifications/unread-count    — count of unread
    PATCH  /api/v1/notifications/<id>/read       — mark one read
    POST   /api/v1/notifications/mark-all-read   — mark all read
"""

from flask import Blueprint, g, jsonify, request

from workplan.middleware.current_user import require_user
from workplan.services.notification import NotificationService
from workplan.utils.errors import E, api_error

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@require_user
def list_notifications():
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    limit = min(200, max(1, request.args.get("limit", 50, type=int)))
    offset = max(0, request.args.get("offset", 0, type=int))
    items, total = NotificationService.list_for_user(
        g.current_user.id, unread_only=unread_only, limit=limit, offset=offset
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(g.current_user.id),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_user
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(g.current_user.id)})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["PATCH"])
@require_user
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, g.current_user.id)
    if notif is None:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/mark-all-read", methods=["POST"])
@require_user
def mark_all_read():
    count = NotificationService.mark_all_read(g.current_user.id)
    return jsonify({"marked": count})
