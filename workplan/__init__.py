"""
Work Plan Tracker
Application factory: extensions, the shared change log and sync outbox,
middleware, blueprints and the maintenance CLI commands.

Usage:
    from workplan import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os
from pathlib import Path

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from workplan.config import config
from workplan.middleware.current_user import init_current_user
from workplan.middleware.logging_config import configure_logging
from workplan.middleware.rate_limiter import init_rate_limits
from workplan.middleware.timing import init_request_timing
from workplan.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """Build a work plan API app for ``config_name`` (a key of ``workplan.config.config``)."""
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config.get(config_name, config["default"])
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Logging (before anything else logs) ──────────────────────────────
    configure_logging(app)

    # ── Flask extensions ─────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    CORS(app, origins=app.config.get("CORS_ORIGINS", "*").split(","))

    # ── Core services shared for the app's lifetime ──────────────────────
    from workplan.services.audit_log import ChangeLog
    from workplan.services.sync_outbox import SyncOutbox

    change_log = ChangeLog()
    outbox = SyncOutbox()
    change_log.subscribe(outbox.queue_change)
    app.extensions["change_log"] = change_log
    app.extensions["sync_outbox"] = outbox

    # ── Models & tables ──────────────────────────────────────────────────
    with app.app_context():
        from workplan.models import audit, auth, initiative, notification, settings  # noqa: F401

        uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
        if uri.startswith("sqlite:///") and ":memory:" not in uri:
            Path(uri.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
        db.create_all()

    # ── Middleware ───────────────────────────────────────────────────────
    init_request_timing(app)
    init_current_user(app)

    # ── HTTP surface ─────────────────────────────────────────────────────
    from workplan.blueprints import register_error_handlers
    from workplan.blueprints.admin_bp import admin_bp
    from workplan.blueprints.audit_bp import audit_bp
    from workplan.blueprints.health_bp import health_bp
    from workplan.blueprints.initiative_bp import initiative_bp
    from workplan.blueprints.metrics_bp import metrics_bp
    from workplan.blueprints.notification_bp import notification_bp

    app.register_blueprint(initiative_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(health_bp)

    register_error_handlers(app)

    # ── Maintenance commands ─────────────────────────────────────────────
    @app.cli.command("sweep-overdue")
    def sweep_overdue_cmd():
        """Move overdue initiatives to At Risk."""
        from workplan.blueprints import current_engine

        moved = current_engine().sweep_overdue()
        db.session.commit()
        logger.info("Overdue sweep moved %s initiative(s).", len(moved))

    @app.cli.command("backup")
    def backup_cmd():
        """Write today's JSON backup and manifest (no-op if it already exists)."""
        from workplan.models.audit import ChangeRecord
        from workplan.models.initiative import Initiative
        from workplan.services.backup_manifest import run_backup

        manifest = run_backup(
            app.config["BACKUP_DIR"],
            {
                "initiatives": lambda: [i.to_dict() for i in Initiative.query.all()],
                "change_records": lambda: [r.to_dict() for r in ChangeRecord.query.all()],
            },
            reporter="cli",
        )
        logger.info("Backup %s: %s", manifest.date, manifest.status)

    # ── Write limits need the registered blueprints ──────────────────────
    init_rate_limits(app, limiter)

    return app
