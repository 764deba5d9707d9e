"""
Work Plan Tracker
Initiative domain model.

Models:
    - Initiative: the primary work item, flattened over the L1–L4 hierarchy
      (asset class → pillar → responsibility → target).

Subtasks and comments are embedded JSON lists on the initiative. Both are
replaced wholesale on every change (a new list of new dicts); in-place
mutation of the stored list is never used, since SQLAlchemy only detects
reassignment of a JSON column.

Effort unit is staff weeks throughout.
"""

from datetime import datetime, timezone
from enum import Enum

from workplan.models import db
from workplan.models.soft_delete import SoftDeleteMixin


# ── Enums ────────────────────────────────────────────────────────────────────

class Status(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    AT_RISK = "At Risk"
    DONE = "Done"
    OBSOLETE = "Obsolete"
    DELETED = "Deleted"


class Priority(str, Enum):
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"


class WorkType(str, Enum):
    PLANNED = "Planned Work"
    UNPLANNED = "Unplanned Work"


class InitiativeType(str, Enum):
    WP = "WP"
    BAU = "BAU"


class UnplannedTag(str, Enum):
    UNPLANNED = "Unplanned"
    RISK_ITEM = "Risk Item"
    PM_ITEM = "PM Item"
    BOTH = "Both"


# Statuses no automatic rule may move an item out of
TERMINAL_STATUSES = {Status.DONE, Status.OBSOLETE, Status.DELETED}

# Statuses the overdue rule leaves untouched
OVERDUE_EXEMPT_STATUSES = {Status.DONE, Status.AT_RISK, Status.DELETED, Status.OBSOLETE}

# Tags allowed on a subtask
TASK_TAGS = {UnplannedTag.UNPLANNED, UnplannedTag.PM_ITEM, UnplannedTag.RISK_ITEM}


def calculate_completion_rate(actual_effort, estimated_effort) -> int:
    """Effort-derived completion percentage (0–100), 0 when nothing is estimated."""
    actual = actual_effort or 0
    estimated = estimated_effort or 0
    if estimated == 0:
        return 0
    return min(100, max(0, round(actual / estimated * 100)))


def active_tasks(tasks):
    """Tasks that still count towards effort (anything not Deleted)."""
    return [t for t in (tasks or []) if t.get("status") != Status.DELETED.value]


def rollup_actual_effort(tasks) -> float:
    return float(sum(t.get("actual_effort") or 0 for t in active_tasks(tasks)))


class Initiative(SoftDeleteMixin, db.Model):
    """
    A tracked initiative.

    ``original_estimated_effort`` / ``original_eta`` are the baseline captured
    at creation and are never rewritten by updates. ``version_id`` is the
    optimistic-concurrency stamp: two concurrent writers on the same
    initiative cannot both commit.
    """

    __tablename__ = "initiatives"
    __table_args__ = (
        db.Index("idx_initiative_owner", "owner_id"),
        db.Index("idx_initiative_status", "status"),
    )

    id = db.Column(db.String(36), primary_key=True)
    initiative_type = db.Column(db.String(10), nullable=False, default=InitiativeType.WP.value)

    # L1-L4 hierarchy
    l1_asset_class = db.Column(db.String(60), nullable=False, default="")
    l2_pillar = db.Column(db.String(200), nullable=False, default="")
    l3_responsibility = db.Column(db.String(300), nullable=False, default="")
    l4_target = db.Column(db.String(300), nullable=False, default="")

    title = db.Column(db.String(300), nullable=False)
    owner_id = db.Column(db.String(64), nullable=False, comment="User id or email of the owner")
    secondary_owner = db.Column(db.String(200), nullable=True)
    quarter = db.Column(db.String(20), nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default=Status.NOT_STARTED.value)
    priority = db.Column(db.String(5), nullable=False, default=Priority.P2.value)
    work_type = db.Column(db.String(20), nullable=False, default=WorkType.PLANNED.value)
    unplanned_tags = db.Column(db.JSON, default=list)

    # Effort (staff weeks)
    estimated_effort = db.Column(db.Float, nullable=False, default=0.0)
    actual_effort = db.Column(db.Float, nullable=False, default=0.0)
    original_estimated_effort = db.Column(db.Float, nullable=True)

    # Dates
    eta = db.Column(db.Date, nullable=True)
    original_eta = db.Column(db.Date, nullable=True)
    last_updated = db.Column(db.Date, nullable=True)
    last_weekly_update = db.Column(db.Date, nullable=True)
    last_delay_date = db.Column(db.Date, nullable=True)

    completion_rate = db.Column(db.Integer, nullable=False, default=0)
    risk_action_log = db.Column(db.Text, nullable=True)
    definition_of_done = db.Column(db.Text, nullable=True)
    is_at_risk = db.Column(db.Boolean, nullable=False, default=False)
    overlooked_count = db.Column(db.Integer, nullable=False, default=0)

    tasks = db.Column(db.JSON, default=list)
    comments = db.Column(db.JSON, default=list)

    pre_delete_status = db.Column(db.String(20), nullable=True)
    version_id = db.Column(db.Integer, nullable=False)

    created_by = db.Column(db.String(150), default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __mapper_args__ = {"version_id_col": version_id}

    # ── Helpers ──────────────────────────────────────────────────────────

    def find_task(self, task_id):
        for task in self.tasks or []:
            if task.get("id") == task_id:
                return task
        return None

    def to_dict(self, include_history=False):
        data = {
            "id": self.id,
            "initiative_type": self.initiative_type,
            "l1_asset_class": self.l1_asset_class,
            "l2_pillar": self.l2_pillar,
            "l3_responsibility": self.l3_responsibility,
            "l4_target": self.l4_target,
            "title": self.title,
            "owner_id": self.owner_id,
            "secondary_owner": self.secondary_owner,
            "quarter": self.quarter,
            "status": self.status,
            "priority": self.priority,
            "work_type": self.work_type,
            "unplanned_tags": list(self.unplanned_tags or []),
            "estimated_effort": self.estimated_effort or 0.0,
            "actual_effort": self.actual_effort or 0.0,
            "original_estimated_effort": self.original_estimated_effort,
            "eta": self.eta.isoformat() if self.eta else None,
            "original_eta": self.original_eta.isoformat() if self.original_eta else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_weekly_update": self.last_weekly_update.isoformat() if self.last_weekly_update else None,
            "last_delay_date": self.last_delay_date.isoformat() if self.last_delay_date else None,
            "completion_rate": self.completion_rate or 0,
            "effort_completion_rate": calculate_completion_rate(self.actual_effort, self.estimated_effort),
            "risk_action_log": self.risk_action_log,
            "definition_of_done": self.definition_of_done,
            "is_at_risk": bool(self.is_at_risk),
            "overlooked_count": self.overlooked_count or 0,
            "tasks": [dict(t) for t in self.tasks or []],
            "comments": [dict(c) for c in self.comments or []],
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "version": self.version_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_history:
            from workplan.models.audit import ChangeRecord
            data["history"] = [r.to_dict() for r in ChangeRecord.for_initiative(self.id)]
        return data

    def __repr__(self):
        return f"<Initiative {self.id}: {self.title[:40]}>"
