"""
Work Plan Tracker
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking.

One record per recipient per event. Delivery (Slack, realtime push) is
handled outside the core; marking read is the only change a notification
ever sees after it is created.
"""

from datetime import datetime, timezone
from enum import Enum

from workplan.models import db


class NotificationType(str, Enum):
    DELAY = "delay"
    FIELD_CHANGE = "field_change"
    STATUS_CHANGE = "status_change"
    MENTION = "mention"
    AT_RISK = "at_risk"
    ETA_CHANGE = "eta_change"
    EFFORT_CHANGE = "effort_change"
    NEW_COMMENT = "new_comment"
    WEEKLY_UPDATE_REMINDER = "weekly_update_reminder"
    OVERLOOKED_ITEM = "overlooked_item"


class Notification(db.Model):
    """In-app notification entity."""

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    user_id = db.Column(db.String(64), nullable=False, index=True, comment="Recipient user id")

    initiative_id = db.Column(db.String(36), nullable=True, index=True)
    initiative_title = db.Column(db.String(300), default="")
    meta = db.Column(db.JSON, default=dict)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "user_id": self.user_id,
            "initiative_id": self.initiative_id,
            "initiative_title": self.initiative_title,
            "metadata": dict(self.meta or {}),
            "read": bool(self.is_read),
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
