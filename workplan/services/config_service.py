"""
AppConfig persistence and admin-panel operations.

The stored payload lives in the single ``app_settings`` row. Loading always
goes through ``AppConfig.from_dict`` so legacy or loosely-typed permission
values are normalised before any service sees them. Every admin operation
returns a new AppConfig and saves it; callers commit.
"""

import logging

from workplan.core.exceptions import ValidationError
from workplan.models import db
from workplan.models.auth import normalize_role
from workplan.models.settings import SETTINGS_KEY, AppSettings
from workplan.services.app_config import AppConfig
from workplan.services.permission_service import PermissionResolver, normalize_key

logger = logging.getLogger(__name__)


def load_config() -> AppConfig:
    row = db.session.get(AppSettings, SETTINGS_KEY)
    if row is None or not row.payload:
        return AppConfig.default()
    return AppConfig.from_dict(row.payload)


def save_config(config: AppConfig, *, updated_by: str = "system") -> AppConfig:
    row = db.session.get(AppSettings, SETTINGS_KEY)
    if row is None:
        row = AppSettings(key=SETTINGS_KEY)
        db.session.add(row)
    row.payload = config.to_dict()
    row.updated_by = updated_by
    db.session.flush()
    logger.info("App config saved", extra={"actor": updated_by})
    return config


def _role_and_key(role, key):
    role_enum = normalize_role(role)
    perm_key = normalize_key(key)
    if role_enum is None:
        raise ValidationError(f"Unknown role: {role!r}", details={"role": "unknown"})
    if perm_key is None:
        raise ValidationError(f"Unknown permission key: {key!r}", details={"key": "unknown"})
    return role_enum, perm_key


def cycle_permission(role, key, *, updated_by="system") -> AppConfig:
    """Advance one matrix cell to its next value and persist the result."""
    role_enum, perm_key = _role_and_key(role, key)
    config = load_config()
    current = PermissionResolver(config).resolve(role_enum, perm_key)
    nxt = PermissionResolver.cycle(role_enum, perm_key, current)
    logger.info("Permission %s/%s: %s -> %s", role_enum.value, perm_key.value,
                current.value, nxt.value, extra={"actor": updated_by})
    return save_config(config.with_permission(role_enum, perm_key, nxt), updated_by=updated_by)


def set_permission(role, key, value, *, updated_by="system") -> AppConfig:
    role_enum, perm_key = _role_and_key(role, key)
    config = load_config().with_permission(role_enum, perm_key, value)
    return save_config(config, updated_by=updated_by)


def set_capacity(owner_id, *, capacity=None, adjustment=None, buffer=None,
                 updated_by="system") -> AppConfig:
    for name, value in (("capacity", capacity), ("buffer", buffer)):
        if value is not None and float(value) < 0:
            raise ValidationError(f"{name} cannot be negative", details={name: "must be >= 0"})
    config = load_config().with_capacity(
        str(owner_id), capacity=capacity, adjustment=adjustment, buffer=buffer
    )
    return save_config(config, updated_by=updated_by)


def set_bau_buffer_suggestion(value, *, updated_by="system") -> AppConfig:
    if float(value) < 0 or float(value) > 100:
        raise ValidationError("BAU buffer suggestion must be a percentage",
                              details={"bau_buffer_suggestion": "0-100"})
    return save_config(load_config().with_bau_buffer_suggestion(value), updated_by=updated_by)
