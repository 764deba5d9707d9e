"""
Work Plan Tracker
Persisted application settings.

Models:
    - AppSettings: single-row JSON store for the process-wide AppConfig
      (capacities, buffers, role permission matrix).

The row is written only by ``config_service.save_config``; services work
with the immutable ``AppConfig`` value, never with this row directly.
"""

from datetime import datetime, timezone

from workplan.models import db

SETTINGS_KEY = "app_config"


class AppSettings(db.Model):
    __tablename__ = "app_settings"

    key = db.Column(db.String(50), primary_key=True, default=SETTINGS_KEY)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    updated_by = db.Column(db.String(150), default="system")
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<AppSettings {self.key}>"
