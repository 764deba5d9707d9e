"""
Work Plan Tracker
Environment settings, picked by ``APP_ENV`` in the app factory.

    app.config.from_object(config[os.getenv("APP_ENV", "development")])

Runtime settings that admins change from the panel (permission matrix,
team capacities, BAU buffer) are not here; they live in the database and
are loaded through ``services.config_service``.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _database_url(fallback):
    # SQLAlchemy 2 only accepts the postgresql:// scheme
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else fallback


class Config:
    """Settings every environment starts from."""

    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    LOG_LEVEL = os.getenv("LOG_LEVEL")

    # Flask-Limiter storage; memory:// keeps counters per process
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Root identity that always passes the admin-panel gate
    SUPER_ADMIN_EMAIL = os.getenv("SUPER_ADMIN_EMAIL", "admin@example.com")

    # Daily JSON backups (``flask backup``)
    BACKUP_DIR = os.getenv("BACKUP_DIR", os.path.join(basedir, "instance", "backups"))

    DAYS_PER_WEEK = int(os.getenv("DAYS_PER_WEEK", "5"))


class DevelopmentConfig(Config):
    """Local SQLite file unless DATABASE_URL points elsewhere."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'workplan_dev.db')}"
    )


class TestingConfig(Config):
    """In-memory SQLite, no rate limits, fixed root identity."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    SUPER_ADMIN_EMAIL = "root@example.com"


class ProductionConfig(Config):
    """Refuses to start without a real database and a stable secret."""

    SQLALCHEMY_DATABASE_URI = _database_url(None)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    def __init__(self):
        missing = [name for name, value in (
            ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
            ("SECRET_KEY", os.getenv("SECRET_KEY")),
        ) if not value]
        if missing:
            raise RuntimeError(f"Production requires: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
