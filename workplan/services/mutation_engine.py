"""
Work Plan Tracker
Mutation Engine — every write to an initiative or its tasks goes through here.

Each operation runs in the same order:

    1. locate (a missing initiative/task is a silent no-op returning None)
    2. permission check (PermissionDenied, nothing written)
    3. validation (ValidationError, nothing written)
    4. audit the detected change (ChangeLog.append)
    5. write, then re-derive status:
         a. actual effort > 0 while Not Started  → In Progress
         b. ETA in the past, status not exempt   → At Risk (+ is_at_risk)
       Done / Obsolete / Deleted are never left by an automatic rule.
    6. stamp last_updated, queue the snapshot on the sync outbox

The engine only adds and flushes; the caller commits (or rolls back).

Usage:
    engine = MutationEngine(app_config, change_log, root_email=..., outbox=...)
    engine.inline_update_initiative(init_id, "eta", "2026-05-01", actor=user)
    engine.update_task(init_id, task_id, "actual_effort", 2, actor=user)
    db.session.commit()
"""

import logging
from dataclasses import dataclass
from datetime import date

from workplan.core.exceptions import ValidationError
from workplan.models import db
from workplan.models.audit import field_label
from workplan.models.initiative import (
    OVERDUE_EXEMPT_STATUSES,
    TASK_TAGS,
    TERMINAL_STATUSES,
    Initiative,
    InitiativeType,
    Priority,
    Status,
    UnplannedTag,
    WorkType,
    active_tasks,
    rollup_actual_effort,
)
from workplan.services import initiative_store
from workplan.services import notification as notify
from workplan.services.mentions import parse_mentions
from workplan.services.notification import NotificationService
from workplan.services.permission_service import (
    PermissionKey,
    PermissionResolver,
    matches_user,
)
from workplan.utils.helpers import new_id, parse_date_input, utcnow

logger = logging.getLogger(__name__)


# ── Field sets ───────────────────────────────────────────────────────────────

EDITABLE_FIELDS = {
    "title", "owner_id", "secondary_owner", "quarter", "status", "priority",
    "work_type", "initiative_type", "unplanned_tags", "estimated_effort",
    "actual_effort", "eta", "completion_rate", "risk_action_log",
    "definition_of_done", "l1_asset_class", "l2_pillar", "l3_responsibility",
    "l4_target",
}

# Changes to these always produce a ChangeRecord (unless suppressed); the
# risk action log is recorded too but never notifies the owner
AUDITED_FIELDS = {"estimated_effort", "eta", "status", "priority"}

TRADE_OFF_FIELDS = {"status", "eta", "priority"}

TASK_FIELDS = {
    "title", "estimated_effort", "actual_effort", "eta", "owner", "owner_id",
    "status", "priority", "tags",
}
TASK_AUDITED_FIELDS = {"estimated_effort", "actual_effort", "eta", "status", "priority"}
EFFORT_FIELDS = {"estimated_effort", "actual_effort"}

_TEXT_FIELDS = {
    "secondary_owner", "quarter", "risk_action_log", "definition_of_done",
    "l1_asset_class", "l2_pillar", "l3_responsibility", "l4_target",
}

# Edits on or after this weekday count as the weekly update (Mon=0)
WEEKLY_UPDATE_WEEKDAY = 3

OVERLOOKED_THRESHOLD = notify.OVERLOOKED_THRESHOLD


@dataclass(frozen=True)
class TradeOffAction:
    """A compensating change on another initiative forced by the current edit."""

    target_initiative_id: str
    field: str
    new_value: object


# ── Value coercion ───────────────────────────────────────────────────────────

def _enum_value(enum_cls, field, value):
    if isinstance(value, enum_cls):
        return value.value
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field}: {value!r}", details={field: f"must be one of: {allowed}"}
        ) from None


def _effort(field, value) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}", details={field: "must be a number"})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}", details={field: "must be a number"}) from None
    if number != number or number < 0:
        raise ValidationError("Effort cannot be negative", details={field: "must be >= 0"})
    return number


def _completion_rate(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Invalid completion_rate", details={"completion_rate": "must be an integer"})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            "Invalid completion_rate", details={"completion_rate": "must be an integer"}
        ) from None
    if not number.is_integer() or not 0 <= number <= 100:
        raise ValidationError(
            "Completion rate must be an integer between 0 and 100",
            details={"completion_rate": "0-100"},
        )
    return int(number)


def _date(field, value):
    try:
        return parse_date_input(value)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "invalid date"}) from None


def _tags(field, value, allowed):
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    tags = []
    for tag in value:
        tag_value = _enum_value(UnplannedTag, field, tag)
        if UnplannedTag(tag_value) not in allowed:
            raise ValidationError(f"Tag {tag_value!r} is not allowed here", details={field: tag_value})
        if tag_value not in tags:
            tags.append(tag_value)
    return tags


def coerce_initiative_value(field, value):
    """Validate and convert an incoming value to its stored form."""
    if field not in EDITABLE_FIELDS:
        raise ValidationError(f"Field {field!r} cannot be edited", details={field: "not editable"})
    if field in EFFORT_FIELDS:
        return _effort(field, value)
    if field == "completion_rate":
        return _completion_rate(value)
    if field == "eta":
        return _date(field, value)
    if field == "status":
        status = _enum_value(Status, field, value)
        if status == Status.DELETED.value:
            raise ValidationError(
                "Use delete to remove an initiative", details={"status": "Deleted is set by delete only"}
            )
        return status
    if field == "priority":
        return _enum_value(Priority, field, value)
    if field == "work_type":
        return _enum_value(WorkType, field, value)
    if field == "initiative_type":
        return _enum_value(InitiativeType, field, value)
    if field == "unplanned_tags":
        return _tags(field, value, set(UnplannedTag))
    if field in ("title", "owner_id"):
        text = str(value or "").strip()
        if not text:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return text
    if field in _TEXT_FIELDS:
        return None if value is None else str(value)
    return value


def coerce_task_value(field, value):
    if field not in TASK_FIELDS:
        raise ValidationError(f"Field {field!r} is not a task field", details={field: "not editable"})
    if field in EFFORT_FIELDS:
        return _effort(field, value)
    if field == "eta":
        parsed = _date(field, value)
        return parsed.isoformat() if parsed else ""
    if field == "status":
        return _enum_value(Status, field, value)
    if field == "priority":
        return _enum_value(Priority, field, value)
    if field == "tags":
        return _tags(field, value, TASK_TAGS)
    if field == "owner_id":
        if not value:
            return None
        return str(value).strip() or None
    return "" if value is None else str(value)


def _json(value):
    if isinstance(value, date):
        return value.isoformat()
    return value


def _require_risk_note(status, *notes):
    """Moving an item to At Risk by hand needs a risk action log."""
    if status != Status.AT_RISK.value:
        return
    if not any((note or "").strip() for note in notes):
        raise ValidationError(
            "Add a risk action log before marking the initiative At Risk",
            details={"risk_action_log": "required for At Risk"},
        )


def _actor_name(actor) -> str:
    return getattr(actor, "name", None) or getattr(actor, "email", None) or str(actor.id)


class MutationEngine:
    """Permission-gated writes with effort roll-up and derived status.

    ``clock`` returns today's date and ``now`` the UTC timestamp stamped on
    tasks, comments and deletions; tests pass fixed ones.
    """

    def __init__(self, config, audit_log, *, root_email=None, outbox=None,
                 store=initiative_store, clock=None, now=None):
        self.config = config
        self.resolver = PermissionResolver(config, root_email)
        self.audit_log = audit_log
        self.outbox = outbox
        self.store = store
        self.clock = clock or date.today
        self.now = now or utcnow

    # ── Helpers ──────────────────────────────────────────────────────────

    def _today(self) -> date:
        return self.clock()

    def _touch(self, initiative):
        today = self._today()
        initiative.last_updated = today
        if today.weekday() >= WEEKLY_UPDATE_WEEKDAY:
            initiative.last_weekly_update = today

    def _finish(self, initiatives, notifications=None):
        NotificationService.save_all(notifications)
        db.session.flush()
        if self.outbox is not None:
            for initiative in initiatives:
                self.outbox.queue_initiative(initiative.to_dict())

    def _is_owner(self, owner_id, actor) -> bool:
        return matches_user(owner_id, actor.id, getattr(actor, "email", None))

    def _record(self, initiative, field, old, new, actor, *, task_id=None, trade_off_source_id=None):
        return self.audit_log.append(
            initiative_id=initiative.id,
            initiative_title=initiative.title,
            task_id=task_id,
            field=field_label(field, task=task_id is not None),
            old_value=_json(old),
            new_value=_json(new),
            changed_by=_actor_name(actor),
            trade_off_source_id=trade_off_source_id,
        )

    def apply_derived_rules(self, initiative, notifications):
        """Re-derive status from effort and ETA. Returns True if status moved."""
        before = initiative.status
        if before in {s.value for s in TERMINAL_STATUSES}:
            return False

        if (initiative.actual_effort or 0) > 0 and initiative.status == Status.NOT_STARTED.value:
            initiative.status = Status.IN_PROGRESS.value

        exempt = {s.value for s in OVERDUE_EXEMPT_STATUSES}
        if initiative.eta and initiative.eta < self._today() and initiative.status not in exempt:
            initiative.status = Status.AT_RISK.value
            initiative.is_at_risk = True
            notifications.append(notify.build_at_risk(initiative))

        if initiative.status != before:
            logger.info(
                "Derived status %s -> %s", before, initiative.status,
                extra={"initiative_id": initiative.id},
            )
            return True
        return False

    def _write_field(self, initiative, field, value, actor, notifications, *,
                     audited, suppress, notify_owner=True, trade_off_source_id=None):
        old = getattr(initiative, field)
        changed = old != value

        if changed and (trade_off_source_id is not None or (audited and not suppress)):
            self._record(initiative, field, old, value, actor, trade_off_source_id=trade_off_source_id)

        if field == "eta" and changed and old is not None and value is not None and value > old:
            initiative.overlooked_count = (initiative.overlooked_count or 0) + 1
            initiative.last_delay_date = self._today()
            if not suppress:
                notifications.append(notify.build_delay(initiative, old.isoformat(), value.isoformat()))
                if initiative.overlooked_count > OVERLOOKED_THRESHOLD:
                    notifications.append(notify.build_overlooked(initiative))

        setattr(initiative, field, value)
        if field == "status":
            initiative.is_at_risk = value == Status.AT_RISK.value

        if (changed and audited and notify_owner and not suppress
                and not self._is_owner(initiative.owner_id, actor)):
            notifications.append(notify.build_field_change(
                initiative, field, field_label(field), _json(old), _json(value), _actor_name(actor)
            ))

        self.apply_derived_rules(initiative, notifications)
        self._touch(initiative)
        return changed

    # ── Initiative edits ─────────────────────────────────────────────────

    def inline_update_initiative(self, initiative_id, field, new_value, *, actor,
                                 suppress_notification=False, audit_fields=None,
                                 trade_off_action=None, risk_action_log=None,
                                 _internal=False):
        """Write one field of an initiative, plus an optional trade-off.

        Returns the updated initiative, or None when it no longer exists.
        """
        initiative = self.store.get(initiative_id, include_deleted=False)
        if initiative is None:
            logger.debug("Inline update on missing initiative %s ignored", initiative_id)
            return None

        target = None
        if trade_off_action is not None:
            if trade_off_action.field not in TRADE_OFF_FIELDS:
                raise ValidationError(
                    "Trade-off can only change status, eta or priority",
                    details={"trade_off.field": trade_off_action.field},
                )
            target = self.store.get(trade_off_action.target_initiative_id, include_deleted=False)
            if target is None:
                logger.debug("Trade-off target %s missing, skipped", trade_off_action.target_initiative_id)
            elif target.id == initiative.id:
                raise ValidationError("Trade-off target must be another initiative",
                                      details={"trade_off.target_initiative_id": target.id})

        if not _internal:
            self.resolver.check_edit_initiative(actor, initiative.owner_id)
            if target is not None:
                self.resolver.check_edit_initiative(actor, target.owner_id)
            if field == "actual_effort" and active_tasks(initiative.tasks):
                raise ValidationError(
                    "Actual effort is the sum of the subtasks; edit the subtasks instead",
                    details={"actual_effort": "derived from subtasks"},
                )

        value = coerce_initiative_value(field, new_value)
        target_value = None
        if target is not None:
            target_value = coerce_initiative_value(trade_off_action.field, trade_off_action.new_value)
        if risk_action_log is not None:
            risk_action_log = str(risk_action_log)

        if not _internal:
            if field == "status" and value != initiative.status:
                _require_risk_note(value, risk_action_log, initiative.risk_action_log)
            if field == "risk_action_log" and initiative.status == Status.AT_RISK.value:
                _require_risk_note(initiative.status, value)
            if target is not None and trade_off_action.field == "status" and target_value != target.status:
                _require_risk_note(target_value, target.risk_action_log)

        extra_audited = set(audit_fields or ())
        notifications = []
        self._write_field(
            initiative, field, value, actor, notifications,
            audited=field in AUDITED_FIELDS or field in extra_audited or field == "risk_action_log",
            suppress=suppress_notification,
            notify_owner=field != "risk_action_log",
        )
        if risk_action_log is not None and risk_action_log != initiative.risk_action_log:
            if not suppress_notification:
                self._record(initiative, "risk_action_log", initiative.risk_action_log, risk_action_log, actor)
            initiative.risk_action_log = risk_action_log

        changed = [initiative]
        if target is not None:
            self._write_field(
                target, trade_off_action.field, target_value, actor, notifications,
                audited=True, suppress=False, trade_off_source_id=initiative.id,
            )
            changed.append(target)
            logger.info(
                "Trade-off applied to %s (%s)", target.id, trade_off_action.field,
                extra={"initiative_id": initiative.id, "actor": _actor_name(actor)},
            )

        self._finish(changed, notifications)
        return initiative

    # ── Task edits ───────────────────────────────────────────────────────

    def _roll_up(self, initiative, actor):
        total = rollup_actual_effort(initiative.tasks)
        return self.inline_update_initiative(
            initiative.id, "actual_effort", total,
            actor=actor, suppress_notification=True, _internal=True,
        )

    def _locate_task(self, initiative_id, task_id):
        initiative = self.store.get(initiative_id, include_deleted=False)
        if initiative is None:
            logger.debug("Task edit on missing initiative %s ignored", initiative_id)
            return None, None
        task = initiative.find_task(task_id)
        if task is None:
            logger.debug("Edit on missing task %s ignored", task_id, extra={"initiative_id": initiative_id})
        return initiative, task

    def update_task(self, initiative_id, task_id, field, new_value, *, actor):
        """Write one field of a subtask. Returns the initiative, or None if missing."""
        initiative, task = self._locate_task(initiative_id, task_id)
        if task is None:
            return None
        if task.get("status") == Status.DELETED.value:
            logger.debug("Edit on deleted task %s ignored", task_id)
            return None

        self.resolver.check_edit_task(actor, task.get("owner_id"), initiative.owner_id)

        value = coerce_task_value(field, new_value)
        if field == "status" and value == Status.DELETED.value:
            return self.delete_task(initiative_id, task_id, actor=actor)
        if field == "status" and value == Status.IN_PROGRESS.value and not task.get("eta"):
            raise ValidationError(
                "Set an ETA before moving the task to In Progress",
                details={"eta": "required for In Progress"},
            )

        old = task.get(field)
        if old == value:
            return initiative

        self.store.replace_task(initiative, task_id, {field: value})
        if field in TASK_AUDITED_FIELDS:
            self._record(initiative, field, old, value, actor, task_id=task_id)

        if field in EFFORT_FIELDS:
            self._roll_up(initiative, actor)
        else:
            self._touch(initiative)
            self._finish([initiative])
        return initiative

    def delete_task(self, initiative_id, task_id, *, actor):
        """Soft-delete a subtask. Deleting an already-deleted task changes nothing."""
        initiative, task = self._locate_task(initiative_id, task_id)
        if task is None:
            return None

        self.resolver.check_delete_task(actor, task.get("owner_id"), initiative.owner_id)
        if task.get("status") == Status.DELETED.value:
            return initiative

        old_status = task.get("status")
        self.store.replace_task(initiative, task_id, {
            "status": Status.DELETED.value,
            "deleted_at": self.now().isoformat(),
        })
        self._record(initiative, "status", old_status, Status.DELETED.value, actor, task_id=task_id)
        self._roll_up(initiative, actor)
        return initiative

    def _build_task(self, data, actor):
        task = {
            "id": new_id(),
            "title": "",
            "estimated_effort": 0.0,
            "actual_effort": 0.0,
            "eta": "",
            "owner": "",
            "owner_id": None,
            "status": Status.NOT_STARTED.value,
            "priority": Priority.P2.value,
            "tags": [],
            "created_at": self.now().isoformat(),
            "created_by": _actor_name(actor),
            "deleted_at": None,
        }
        for field in TASK_FIELDS:
            if field in data:
                task[field] = coerce_task_value(field, data[field])
        if task["status"] == Status.DELETED.value:
            raise ValidationError("A new task cannot be Deleted", details={"status": "invalid"})
        if task["status"] == Status.IN_PROGRESS.value and not task["eta"]:
            raise ValidationError(
                "Set an ETA before moving the task to In Progress",
                details={"eta": "required for In Progress"},
            )
        return task

    def add_task(self, initiative_id, data, *, actor):
        """Append a subtask and re-run the effort roll-up. Returns (initiative, task)."""
        initiative = self.store.get(initiative_id, include_deleted=False)
        if initiative is None:
            return None, None
        owner_ref = (data or {}).get("owner_id") or initiative.owner_id
        self.resolver.check_create(actor, owner_ref)

        task = self._build_task(data or {}, actor)
        self.store.append_task(initiative, task)
        self._roll_up(initiative, actor)
        logger.info("Task added", extra={"initiative_id": initiative.id, "task_id": task["id"]})
        return initiative, task

    # ── Create / delete / restore ────────────────────────────────────────

    def create_initiative(self, data, *, actor):
        data = dict(data or {})
        owner_id = str(data.get("owner_id") or actor.id).strip()
        self.resolver.check_create(actor, owner_id)

        values = {"owner_id": owner_id}
        for field in EDITABLE_FIELDS:
            if field in data and field != "owner_id":
                values[field] = coerce_initiative_value(field, data[field])
        if not values.get("title"):
            raise ValidationError("title is required", details={"title": "required"})
        _require_risk_note(values.get("status"), values.get("risk_action_log"))

        raw_tasks = data.get("tasks") or []
        tasks = [self._build_task(t, actor) for t in raw_tasks]
        if tasks:
            values["actual_effort"] = rollup_actual_effort(tasks)

        initiative = Initiative(
            id=str(data.get("id") or new_id()),
            status=Status.NOT_STARTED.value,
            priority=Priority.P2.value,
            work_type=WorkType.PLANNED.value,
            initiative_type=InitiativeType.WP.value,
            estimated_effort=0.0,
            actual_effort=0.0,
            completion_rate=0,
            overlooked_count=0,
            is_at_risk=False,
            unplanned_tags=[],
            tasks=tasks,
            comments=[],
            created_by=_actor_name(actor),
        )
        for field, value in values.items():
            setattr(initiative, field, value)
        initiative.is_at_risk = initiative.status == Status.AT_RISK.value
        # Baseline, never rewritten afterwards
        initiative.original_estimated_effort = initiative.estimated_effort
        initiative.original_eta = initiative.eta

        notifications = []
        self.apply_derived_rules(initiative, notifications)
        self._touch(initiative)
        self.store.add(initiative)
        self._finish([initiative], notifications)
        logger.info("Initiative created", extra={"initiative_id": initiative.id, "actor": _actor_name(actor)})
        return initiative

    def soft_delete_initiative(self, initiative_id, *, actor):
        initiative = self.store.get(initiative_id)
        if initiative is None:
            return None
        self.resolver.check_delete_initiative(actor, initiative.owner_id)
        if initiative.is_deleted:
            return initiative

        old_status = initiative.status
        initiative.pre_delete_status = old_status
        initiative.status = Status.DELETED.value
        initiative.soft_delete(self.now())
        self._record(initiative, "status", old_status, Status.DELETED.value, actor)
        self._touch(initiative)
        self._finish([initiative])
        logger.info("Initiative moved to trash", extra={"initiative_id": initiative.id})
        return initiative

    def restore_initiative(self, initiative_id, *, actor):
        initiative = self.store.get(initiative_id)
        if initiative is None:
            return None
        self.resolver.check_delete_initiative(actor, initiative.owner_id)
        if not initiative.is_deleted:
            return initiative

        restored = initiative.pre_delete_status or Status.NOT_STARTED.value
        initiative.restore()
        initiative.status = restored
        initiative.pre_delete_status = None
        initiative.is_at_risk = restored == Status.AT_RISK.value
        self._record(initiative, "status", Status.DELETED.value, restored, actor)

        notifications = []
        self.apply_derived_rules(initiative, notifications)
        self._touch(initiative)
        self._finish([initiative], notifications)
        logger.info("Initiative restored", extra={"initiative_id": initiative.id})
        return initiative

    def hard_delete_initiatives(self, initiative_ids, *, actor):
        """Physically remove initiatives (admin only). Change records survive."""
        self.resolver.check_admin(actor)
        removed = []
        for initiative_id in initiative_ids or []:
            initiative = self.store.get(initiative_id)
            if initiative is None:
                continue
            self.store.remove(initiative)
            removed.append(initiative_id)
        logger.warning("Hard-deleted %d initiative(s)", len(removed), extra={"actor": _actor_name(actor)})
        return removed

    # ── Comments ─────────────────────────────────────────────────────────

    def add_comment(self, initiative_id, text, *, actor, users):
        """Add a comment; returns (comment, notifications) or (None, []) if missing."""
        initiative = self.store.get(initiative_id, include_deleted=False)
        if initiative is None:
            return None, []
        self.resolver.check_view_tab(actor, PermissionKey.ACCESS_ALL_TASKS)

        text = (text or "").strip()
        if not text:
            raise ValidationError("Comment text is required", details={"text": "required"})

        comment = {
            "id": new_id(),
            "text": text,
            "author_id": actor.id,
            "timestamp": self.now().isoformat(),
            # Frozen at creation
            "mentioned_user_ids": parse_mentions(text, users),
        }
        self.store.append_comment(initiative, comment)
        self._touch(initiative)

        notifications = notify.on_comment_added(initiative, comment, users, author_name=_actor_name(actor))
        self._finish([initiative], notifications)
        return comment, notifications

    # ── System jobs ──────────────────────────────────────────────────────

    def sweep_overdue(self):
        """Apply the overdue rule to every live initiative. Returns moved ids."""
        moved = []
        notifications = []
        initiatives = self.store.list_active().all()
        for initiative in initiatives:
            if self.apply_derived_rules(initiative, notifications):
                moved.append(initiative)
        self._finish(moved, notifications)
        logger.info("Overdue sweep moved %d of %d initiative(s)", len(moved), len(initiatives))
        return [i.id for i in moved]

    def import_rows(self, rows, *, actor):
        """Create initiatives from pre-validated import rows.

        Rows flagged invalid are skipped with their parser error. A row that
        breaks an invariant is skipped too; the rest still import.
        """
        created, skipped = [], []
        for index, row in enumerate(rows or []):
            is_valid = row.get("is_valid", row.get("isValid", False))
            data = row.get("data") or {k: v for k, v in row.items()
                                       if k not in ("is_valid", "isValid", "error")}
            if not is_valid:
                logger.info("Import row %d skipped: %s", index, row.get("error") or "invalid")
                skipped.append({"row": index, "error": row.get("error") or "invalid row"})
                continue
            try:
                initiative = self.create_initiative(data, actor=actor)
            except ValidationError as exc:
                logger.info("Import row %d rejected: %s", index, exc)
                skipped.append({"row": index, "error": str(exc)})
                continue
            created.append(initiative.id)
        return {"created": created, "skipped": skipped}
