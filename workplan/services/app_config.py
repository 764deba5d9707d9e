"""
Process-wide application configuration value.

``AppConfig`` is immutable. Every change goes through a helper that returns
a new value (``with_permission``, ``with_capacity`` ...); nothing mutates a
config in place. Raw payloads (stored JSON, admin requests) are normalised
once in ``AppConfig.from_dict`` so permission values are always proper enum
members downstream:

    True  → "yes" / "edit"
    False → "no"  / "none"
    anything unrecognised → the key's most restrictive value
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from workplan.models.auth import Role, normalize_role
from workplan.services.permission_service import (
    PermissionKey,
    TabAccess,
    TaskScope,
    default_value,
    is_tab_key,
    normalize_key,
    value_type,
)

logger = logging.getLogger(__name__)

DEFAULT_BAU_BUFFER_SUGGESTION = 15

_Y, _N, _O = TaskScope.YES, TaskScope.NO, TaskScope.OWN
_E, _V, _X = TabAccess.EDIT, TabAccess.VIEW, TabAccess.NONE


def _row(tabs, create, edit, delete, admin, workflows):
    all_tasks, deps, timeline, wf_tab, health = tabs
    return {
        PermissionKey.ACCESS_ALL_TASKS: all_tasks,
        PermissionKey.ACCESS_DEPENDENCIES: deps,
        PermissionKey.ACCESS_TIMELINE: timeline,
        PermissionKey.ACCESS_WORKFLOWS: wf_tab,
        PermissionKey.ACCESS_WORKPLAN_HEALTH: health,
        PermissionKey.CREATE_NEW_TASKS: create,
        PermissionKey.EDIT_TASKS: edit,
        PermissionKey.DELETE_TASKS: delete,
        PermissionKey.ACCESS_ADMIN: admin,
        PermissionKey.MANAGE_WORKFLOWS: workflows,
    }


DEFAULT_ROLE_PERMISSIONS = {
    Role.ADMIN: _row((_E, _E, _E, _E, _E), _Y, _Y, _Y, _Y, _Y),
    Role.SVP: _row((_E, _E, _E, _E, _E), _Y, _Y, _Y, _Y, _Y),
    Role.VP: _row((_E, _E, _E, _E, _E), _Y, _Y, _N, _N, _Y),
    Role.DIRECTOR_DEPARTMENT: _row((_E, _E, _E, _E, _E), _Y, _Y, _N, _N, _Y),
    Role.DIRECTOR_GROUP: _row((_E, _E, _E, _V, _E), _Y, _O, _Y, _N, _N),
    Role.TEAM_LEAD: _row((_E, _V, _V, _V, _X), _Y, _O, _O, _N, _N),
    Role.PORTFOLIO_OPS: _row((_E, _V, _V, _E, _E), _Y, _O, _N, _N, _Y),
}


# ── Normalisation ────────────────────────────────────────────────────────────

def normalize_permission_value(key: PermissionKey, raw):
    """Coerce a stored value for ``key`` onto its enum; default on anything unknown."""
    enum_type = value_type(key)
    if isinstance(raw, enum_type):
        return raw
    if isinstance(raw, bool):
        if is_tab_key(key):
            return TabAccess.EDIT if raw else TabAccess.NONE
        return TaskScope.YES if raw else TaskScope.NO
    if isinstance(raw, str):
        try:
            return enum_type(raw.strip().lower())
        except ValueError:
            pass
    if raw is not None:
        logger.warning("Unrecognised permission value %r for %s, using default", raw, key.value)
    return default_value(key)


def normalize_role_permissions(raw) -> dict:
    """Build a complete Role × PermissionKey matrix from a loosely-typed mapping.

    Unknown roles and keys are dropped. Keys missing for a known role take
    the default-deny value, so every pair resolves to exactly one value.
    """
    matrix = {role: {key: default_value(key) for key in PermissionKey} for role in Role}
    for role_name, row in (raw or {}).items():
        role = normalize_role(role_name)
        if role is None:
            logger.warning("Dropping permissions for unknown role %r", role_name)
            continue
        for key_name, value in (row or {}).items():
            key = normalize_key(key_name)
            if key is None:
                continue
            matrix[role][key] = normalize_permission_value(key, value)
    return matrix


# Flags that only exist in the old boolean permission rows
LEGACY_ONLY_KEYS = {"createPlanned", "createUnplanned", "editOwn", "editAll", "createWorkflows"}


def is_legacy_row(row) -> bool:
    return bool(row) and any(k in LEGACY_ONLY_KEYS for k in row)


def migrate_legacy_permissions(legacy) -> dict:
    """Convert the old boolean-flag permission rows to the current matrix."""
    migrated = {}
    for role in Role:
        flags = dict((legacy or {}).get(role.value) or {})
        create = flags.get("createPlanned") or flags.get("createUnplanned")
        edit_all = flags.get("editAll")
        edit_own = flags.get("editOwn")
        if create or edit_own or edit_all:
            all_tasks = "edit" if (edit_all or edit_own) else "view"
        else:
            all_tasks = "none"
        if flags.get("createWorkflows"):
            workflows_tab = "edit" if flags.get("manageWorkflows") else "view"
        else:
            workflows_tab = "none"
        migrated[role.value] = {
            "accessAllTasks": all_tasks,
            "accessDependencies": "edit" if (edit_all or edit_own) else "view",
            "accessTimeline": "edit" if (edit_all or edit_own) else "view",
            "accessWorkflows": workflows_tab,
            "accessWorkplanHealth": "edit" if flags.get("accessWorkplanHealth") else "none",
            "createNewTasks": "yes" if create else "no",
            "editTasks": "yes" if edit_all else ("own" if edit_own else "no"),
            # Legacy rows had no delete flag
            "deleteTasks": "no",
            "accessAdmin": "yes" if flags.get("accessAdmin") else "no",
            "manageWorkflows": "yes" if flags.get("manageWorkflows") else "no",
        }
    return migrated


def _freeze_number_map(raw) -> MappingProxyType:
    cleaned = {}
    for owner_id, value in (raw or {}).items():
        try:
            cleaned[str(owner_id)] = float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric capacity value %r for %s", value, owner_id)
    return MappingProxyType(cleaned)


def _freeze_matrix(matrix) -> MappingProxyType:
    return MappingProxyType({role: MappingProxyType(dict(row)) for role, row in matrix.items()})


# ── AppConfig ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AppConfig:
    """Capacity settings and the role permission matrix.

    All mappings are read-only views; use the ``with_*`` helpers to derive
    an updated config.
    """

    bau_buffer_suggestion: float = DEFAULT_BAU_BUFFER_SUGGESTION
    team_capacities: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    team_capacity_adjustments: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    team_buffers: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    role_permissions: MappingProxyType = field(
        default_factory=lambda: _freeze_matrix(normalize_role_permissions({}))
    )

    @classmethod
    def default(cls) -> "AppConfig":
        return cls(role_permissions=_freeze_matrix(normalize_role_permissions(DEFAULT_ROLE_PERMISSIONS)))

    @classmethod
    def from_dict(cls, data: dict | None) -> "AppConfig":
        """Build a config from a stored/API payload (camelCase or snake_case keys)."""
        data = data or {}

        def pick(*names, default=None):
            for name in names:
                if name in data:
                    return data[name]
            return default

        raw_perms = pick("role_permissions", "rolePermissions")
        if raw_perms is None:
            matrix = AppConfig.default().role_permissions
        else:
            if any(is_legacy_row(row) for row in raw_perms.values()):
                logger.info("Migrating legacy role permissions")
                raw_perms = migrate_legacy_permissions(raw_perms)
            matrix = _freeze_matrix(normalize_role_permissions(raw_perms))

        return cls(
            bau_buffer_suggestion=float(
                pick("bau_buffer_suggestion", "bauBufferSuggestion", default=DEFAULT_BAU_BUFFER_SUGGESTION)
            ),
            team_capacities=_freeze_number_map(pick("team_capacities", "teamCapacities")),
            team_capacity_adjustments=_freeze_number_map(
                pick("team_capacity_adjustments", "teamCapacityAdjustments")
            ),
            team_buffers=_freeze_number_map(pick("team_buffers", "teamBuffers")),
            role_permissions=matrix,
        )

    def to_dict(self) -> dict:
        return {
            "bauBufferSuggestion": self.bau_buffer_suggestion,
            "teamCapacities": dict(self.team_capacities),
            "teamCapacityAdjustments": dict(self.team_capacity_adjustments),
            "teamBuffers": dict(self.team_buffers),
            "rolePermissions": {
                role.value: {key.value: value.value for key, value in row.items()}
                for role, row in self.role_permissions.items()
            },
        }

    # ── Immutable updates ───────────────────────────────────────────────

    def with_permission(self, role, key, value) -> "AppConfig":
        role, key = normalize_role(role), normalize_key(key)
        if role is None or key is None:
            raise ValueError("Unknown role or permission key")
        matrix = {r: dict(row) for r, row in self.role_permissions.items()}
        matrix.setdefault(role, {k: default_value(k) for k in PermissionKey})
        matrix[role][key] = normalize_permission_value(key, value)
        return replace(self, role_permissions=_freeze_matrix(matrix))

    def with_capacity(self, owner_id: str, *, capacity=None, adjustment=None, buffer=None) -> "AppConfig":
        changes = {}
        if capacity is not None:
            changes["team_capacities"] = _freeze_number_map({**self.team_capacities, owner_id: capacity})
        if adjustment is not None:
            changes["team_capacity_adjustments"] = _freeze_number_map(
                {**self.team_capacity_adjustments, owner_id: adjustment}
            )
        if buffer is not None:
            changes["team_buffers"] = _freeze_number_map({**self.team_buffers, owner_id: buffer})
        return replace(self, **changes) if changes else self

    def with_bau_buffer_suggestion(self, value) -> "AppConfig":
        return replace(self, bau_buffer_suggestion=float(value))

    def sync_capacities_with_users(self, user_ids, default_capacity=None) -> "AppConfig":
        """Drop capacity entries for removed users and seed new ones."""
        keep = {str(uid) for uid in user_ids}

        def prune(mapping, seed=None):
            cleaned = {k: v for k, v in mapping.items() if k in keep}
            if seed is not None:
                for uid in keep:
                    cleaned.setdefault(uid, seed)
            return _freeze_number_map(cleaned)

        return replace(
            self,
            team_capacities=prune(self.team_capacities, default_capacity),
            team_capacity_adjustments=prune(self.team_capacity_adjustments),
            team_buffers=prune(self.team_buffers),
        )
