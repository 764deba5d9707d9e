"""
Append-only change log.

``ChangeLog`` is the single write path for ChangeRecord rows. ``append``
adds and flushes, leaving transaction control with the caller, exactly like
every other service write. Reads always sort by timestamp (then id) because
trade-off writes land on a different initiative than the edit that caused
them, so insertion order alone is not meaningful.

Subscribers (e.g. the sync outbox) are called after each append. A failing
subscriber is logged and never affects the append itself.
"""

import logging

from workplan.models import db
from workplan.models.audit import ChangeRecord, field_label

logger = logging.getLogger(__name__)


class ChangeLog:
    def __init__(self):
        self._subscribers = []

    def subscribe(self, callback):
        """Register ``callback(record)``; returns it so it can be used as a decorator."""
        self._subscribers.append(callback)
        return callback

    def append(
        self,
        *,
        initiative_id: str,
        initiative_title: str,
        field: str,
        old_value,
        new_value,
        changed_by: str,
        task_id: str | None = None,
        trade_off_source_id: str | None = None,
        timestamp=None,
    ) -> ChangeRecord:
        record = ChangeRecord(
            initiative_id=initiative_id,
            initiative_title=initiative_title or "",
            task_id=task_id,
            field=field,
            old_value=old_value,
            new_value=new_value,
            changed_by=changed_by or "system",
            trade_off_source_id=trade_off_source_id,
        )
        if timestamp is not None:
            record.timestamp = timestamp
        db.session.add(record)
        db.session.flush()

        logger.info(
            "Change recorded: %s %r -> %r",
            field, old_value, new_value,
            extra={"initiative_id": initiative_id, "task_id": task_id, "actor": record.changed_by},
        )

        for callback in list(self._subscribers):
            try:
                callback(record)
            except Exception:
                logger.exception("Change log subscriber %r failed", callback)
        return record

    @staticmethod
    def query(initiative_id=None, field=None, task_id=None):
        """Records in time order. ``field`` is an attribute name or its stored label."""
        q = ChangeRecord.query
        if initiative_id is not None:
            q = q.filter(ChangeRecord.initiative_id == initiative_id)
        if field is not None:
            q = q.filter(ChangeRecord.field == field_label(field, task=task_id is not None))
        if task_id is not None:
            q = q.filter(ChangeRecord.task_id == task_id)
        return q.order_by(ChangeRecord.timestamp.asc(), ChangeRecord.id.asc()).all()

    @staticmethod
    def latest(initiative_id, field):
        """Most recent record for ``field`` (attribute name or label) on an initiative, or None."""
        return (
            ChangeRecord.query
            .filter_by(initiative_id=initiative_id, field=field_label(field))
            .order_by(ChangeRecord.timestamp.desc(), ChangeRecord.id.desc())
            .first()
        )
