"""
Work Plan Tracker
Notification Service.

Builds in-app notifications for work-plan events and stores/queries them.

Builders (``build_*`` / ``on_comment_added``) return transient Notification
objects and never touch the session, so they can be unit-tested without a
database; ``NotificationService.save_all`` persists them. Delivery to Slack
or a realtime channel is an external concern and its failure never rolls
back the work-plan change that produced the notification.
"""

import logging
from datetime import datetime, timezone

from workplan.models import db
from workplan.models.notification import Notification, NotificationType
from workplan.services.permission_service import matches_user

logger = logging.getLogger(__name__)

# More delays than this turn an item into an "overlooked" item
OVERLOOKED_THRESHOLD = 2


def _new(kind, title, message, user_id, initiative, **meta):
    return Notification(
        type=kind.value,
        title=title,
        message=message,
        user_id=str(user_id),
        initiative_id=initiative.id,
        initiative_title=initiative.title or "",
        meta=meta,
        is_read=False,
        created_at=datetime.now(timezone.utc),
    )


# ── Builders ─────────────────────────────────────────────────────────────────

def on_comment_added(initiative, comment, users, author_name=None):
    """Notifications for a new comment.

    - NewComment to the initiative owner unless the owner wrote it.
    - One Mention per id in ``comment["mentioned_user_ids"]``; the owner is
      skipped when they already got the NewComment notification.
    """
    index = {u.id: u for u in users or []}
    author_id = comment.get("author_id")
    author = index.get(author_id)
    author_name = author_name or (author.name if author else "Someone")
    author_email = author.email if author else None

    notifications = []
    owner_notified = False
    if initiative.owner_id and not matches_user(initiative.owner_id, author_id, author_email):
        notifications.append(_new(
            NotificationType.NEW_COMMENT,
            "New comment",
            f'{author_name} commented on "{initiative.title}"',
            initiative.owner_id,
            initiative,
            comment_id=comment.get("id"),
            comment_text=comment.get("text"),
        ))
        owner_notified = True

    for user_id in comment.get("mentioned_user_ids") or []:
        if owner_notified and matches_user(initiative.owner_id, user_id,
                                           index[user_id].email if user_id in index else None):
            continue
        notifications.append(_new(
            NotificationType.MENTION,
            "You were mentioned",
            f'{author_name} mentioned you in a comment on "{initiative.title}"',
            user_id,
            initiative,
            comment_id=comment.get("id"),
            comment_text=comment.get("text"),
        ))
    return notifications


_CHANGE_TYPES = {
    "status": (NotificationType.STATUS_CHANGE, "Status changed"),
    "eta": (NotificationType.ETA_CHANGE, "ETA changed"),
    "estimated_effort": (NotificationType.EFFORT_CHANGE, "Effort changed"),
    "actual_effort": (NotificationType.EFFORT_CHANGE, "Effort changed"),
}


def build_field_change(initiative, field, label, old_value, new_value, actor_name):
    """Notify the owner that someone else changed one of their fields."""
    kind, title = _CHANGE_TYPES.get(field, (NotificationType.FIELD_CHANGE, f"{label} changed"))
    return _new(
        kind, title,
        f'{actor_name} changed {label} on "{initiative.title}" from {old_value!r} to {new_value!r}',
        initiative.owner_id, initiative,
        field=field, old_value=old_value, new_value=new_value, changed_by=actor_name,
    )


def build_at_risk(initiative):
    return _new(
        NotificationType.AT_RISK, "Initiative at risk",
        f'"{initiative.title}" passed its ETA and is now At Risk',
        initiative.owner_id, initiative,
        eta=initiative.eta.isoformat() if initiative.eta else None,
    )


def build_delay(initiative, old_eta, new_eta):
    return _new(
        NotificationType.DELAY, "ETA delayed",
        f'"{initiative.title}" was delayed from {old_eta} to {new_eta}',
        initiative.owner_id, initiative,
        old_eta=old_eta, new_eta=new_eta, overlooked_count=initiative.overlooked_count,
    )


def build_overlooked(initiative):
    return _new(
        NotificationType.OVERLOOKED_ITEM, "Repeatedly delayed item",
        f'"{initiative.title}" has been delayed {initiative.overlooked_count} times',
        initiative.owner_id, initiative,
        overlooked_count=initiative.overlooked_count,
    )


class NotificationService:
    """Stateless service class for notification storage and queries."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def save_all(notifications):
        """Add notifications to the session and flush; caller commits."""
        items = [n for n in notifications or [] if n is not None]
        for notif in items:
            db.session.add(notif)
        if items:
            db.session.flush()
            logger.debug("Queued %d notification(s)", len(items))
        return items

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Notifications for a user, newest first."""
        q = Notification.query.filter_by(user_id=str(user_id))
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=str(user_id), is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the user's notifications as read; None if it is not theirs."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.user_id != str(user_id):
            return None
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        q = Notification.query.filter_by(user_id=str(user_id), is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count
