"""
Work Plan Tracker
Audit domain model.

Models:
    - ChangeRecord: immutable, append-only field-change entry for an
      initiative (or one of its subtasks).

``initiative_id`` is deliberately a plain column, not a foreign key: records
outlive a hard-deleted initiative, and ``initiative_title`` is denormalised
for display for the same reason.
"""

from datetime import UTC, datetime

from workplan.models import db


# ── Field labels ─────────────────────────────────────────────────────────────

# Attribute name → label stored in ChangeRecord.field
FIELD_LABELS = {
    "estimated_effort": "Effort",
    "actual_effort": "Actual Effort",
    "eta": "ETA",
    "status": "Status",
    "priority": "Priority",
    "risk_action_log": "Risk Action Log",
    "completion_rate": "Completion Rate",
    "owner_id": "Owner",
    "title": "Title",
    "work_type": "Work Type",
    "quarter": "Quarter",
}

TASK_FIELD_LABELS = {
    "estimated_effort": "Task Effort",
    "actual_effort": "Task Actual Effort",
    "eta": "Task ETA",
    "status": "Task Status",
    "priority": "Task Priority",
}


def field_label(field: str, *, task: bool = False) -> str:
    labels = TASK_FIELD_LABELS if task else FIELD_LABELS
    return labels.get(field, field)


class ChangeRecord(db.Model):
    """
    One detected field change.

    Created exactly once per change and never updated or deleted.
    ``trade_off_source_id`` names the initiative whose edit forced this
    change when it was written by a trade-off.
    """

    __tablename__ = "change_records"
    __table_args__ = (
        db.Index("idx_change_initiative_field", "initiative_id", "field"),
        db.Index("idx_change_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    initiative_id = db.Column(db.String(36), nullable=False)
    initiative_title = db.Column(db.String(300), nullable=False, default="")
    task_id = db.Column(db.String(36), nullable=True, index=True)

    field = db.Column(db.String(60), nullable=False, comment="Display label, e.g. ETA | Effort | Status")
    old_value = db.Column(db.JSON, nullable=True)
    new_value = db.Column(db.JSON, nullable=True)

    changed_by = db.Column(db.String(150), nullable=False, default="system")
    trade_off_source_id = db.Column(db.String(36), nullable=True)

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @classmethod
    def for_initiative(cls, initiative_id):
        return (
            cls.query.filter_by(initiative_id=initiative_id)
            .order_by(cls.timestamp.asc(), cls.id.asc())
            .all()
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "initiative_id": self.initiative_id,
            "initiative_title": self.initiative_title,
            "task_id": self.task_id,
            "issue_type": "Task" if self.task_id else "Initiative",
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "trade_off_source_id": self.trade_off_source_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<ChangeRecord {self.id}: {self.field} on {self.initiative_id}>"
