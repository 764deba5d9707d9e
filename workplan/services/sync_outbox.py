"""
Fire-and-forget persistence outbox.

The work plan in the database is the source of truth. External stores
(spreadsheet sync, backups) receive copies through this outbox:

    - initiative snapshots are upserted by id, so a later snapshot replaces
      an earlier one that has not been flushed yet;
    - change records are queued in order.

``flush(sink)`` hands each batch to ``sink(kind, items)``. A sink that
raises or returns False leaves its batch queued for the next flush;
nothing in the database is touched either way.
"""

import logging
import threading
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

INITIATIVES = "initiatives"
CHANGES = "changes"


class SyncOutbox:
    def __init__(self):
        self._lock = threading.Lock()
        self._initiatives = {}
        self._changes = []
        self.last_flush_at = None
        self.last_errors = []

    # ── Queue ───────────────────────────────────────────────────────────

    def queue_initiative(self, snapshot: dict):
        with self._lock:
            self._initiatives[snapshot["id"]] = snapshot
        logger.debug("Queued initiative snapshot", extra={"initiative_id": snapshot["id"]})

    def queue_change(self, record):
        """Queue a change record (a ChangeRecord or its dict form)."""
        item = record.to_dict() if hasattr(record, "to_dict") else dict(record)
        with self._lock:
            self._changes.append(item)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._initiatives) + len(self._changes)

    def status(self) -> dict:
        with self._lock:
            return {
                "pending_initiatives": len(self._initiatives),
                "pending_changes": len(self._changes),
                "last_flush_at": self.last_flush_at.isoformat() if self.last_flush_at else None,
                "last_errors": list(self.last_errors),
            }

    def clear(self):
        with self._lock:
            self._initiatives = {}
            self._changes = []

    # ── Flush ───────────────────────────────────────────────────────────

    def _deliver(self, sink, kind, items) -> bool:
        try:
            result = sink(kind, items)
        except Exception:
            logger.exception("Sync sink failed for %d %s; keeping them queued", len(items), kind)
            return False
        if result is False:
            logger.error("Sync sink rejected %d %s; keeping them queued", len(items), kind)
            return False
        return True

    def flush(self, sink) -> dict:
        """Deliver everything queued; returns counts of sent and retained items."""
        with self._lock:
            initiatives = self._initiatives
            changes = self._changes
            self._initiatives = {}
            self._changes = []

        errors = []
        sent = {INITIATIVES: 0, CHANGES: 0}

        if initiatives:
            if self._deliver(sink, INITIATIVES, list(initiatives.values())):
                sent[INITIATIVES] = len(initiatives)
            else:
                errors.append(INITIATIVES)
                with self._lock:
                    # A snapshot queued during the flush is newer; keep it
                    for initiative_id, snapshot in initiatives.items():
                        self._initiatives.setdefault(initiative_id, snapshot)

        if changes:
            if self._deliver(sink, CHANGES, changes):
                sent[CHANGES] = len(changes)
            else:
                errors.append(CHANGES)
                with self._lock:
                    self._changes = changes + self._changes

        self.last_flush_at = datetime.now(timezone.utc)
        self.last_errors = errors
        if not errors:
            logger.info("Sync flush complete: %s", sent)
        return {"sent": sent, "errors": errors, "pending": self.pending_count}
