"""
Trash support for initiatives.

A soft-deleted row keeps its data and gains a ``deleted_at`` stamp; it drops
out of the work plan and the metrics but stays restorable until an admin
purges it. Hard delete is a separate, explicit operation.
"""

from datetime import datetime, timezone

from workplan.models import db


class SoftDeleteMixin:
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self, when=None):
        self.deleted_at = when or datetime.now(timezone.utc)

    def restore(self):
        self.deleted_at = None

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Live rows only; the default for every listing."""
        return cls.query.filter(cls.deleted_at.is_(None))

    @classmethod
    def query_deleted(cls):
        """Trash view."""
        return cls.query.filter(cls.deleted_at.isnot(None))
