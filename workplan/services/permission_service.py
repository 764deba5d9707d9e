"""
Role-based permission resolution over the role permission matrix.

Every (Role, PermissionKey) pair resolves to exactly one value. Pairs the
matrix does not set, unknown roles and unknown keys all resolve to the most
restrictive value: ``none`` for tab keys, ``no`` for scope keys.

Usage:
    from workplan.services.permission_service import PermissionResolver, PermissionKey

    resolver = PermissionResolver(app_config, root_email="admin@example.com")

    # Boolean check
    if resolver.can_edit_task(user.role, task_owner, initiative.owner_id, user.id, user.email):
        ...

    # Raises PermissionDenied with a user-facing message
    resolver.check_edit_task(user, task_owner, initiative.owner_id)

Root identity:
    ``root_email`` always passes the admin-panel gate, whatever its role says.
    The check runs before the matrix lookup and is limited to that gate; it
    grants nothing else.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from workplan.core.exceptions import PermissionDenied
from workplan.models.auth import normalize_role

logger = logging.getLogger(__name__)


class PermissionKey(str, Enum):
    # Tab access
    ACCESS_ALL_TASKS = "accessAllTasks"
    ACCESS_DEPENDENCIES = "accessDependencies"
    ACCESS_TIMELINE = "accessTimeline"
    ACCESS_WORKFLOWS = "accessWorkflows"
    ACCESS_WORKPLAN_HEALTH = "accessWorkplanHealth"
    # Task management
    CREATE_NEW_TASKS = "createNewTasks"
    EDIT_TASKS = "editTasks"
    DELETE_TASKS = "deleteTasks"
    # Admin
    ACCESS_ADMIN = "accessAdmin"
    MANAGE_WORKFLOWS = "manageWorkflows"


class TabAccess(str, Enum):
    NONE = "none"
    VIEW = "view"
    EDIT = "edit"


class TaskScope(str, Enum):
    NO = "no"
    YES = "yes"
    OWN = "own"


TAB_KEYS = frozenset({
    PermissionKey.ACCESS_ALL_TASKS,
    PermissionKey.ACCESS_DEPENDENCIES,
    PermissionKey.ACCESS_TIMELINE,
    PermissionKey.ACCESS_WORKFLOWS,
    PermissionKey.ACCESS_WORKPLAN_HEALTH,
})

# Fixed cycle order used by the admin matrix editor
TAB_CYCLE = (TabAccess.NONE, TabAccess.VIEW, TabAccess.EDIT)
SCOPE_CYCLE = (TaskScope.NO, TaskScope.YES, TaskScope.OWN)


def normalize_key(key) -> PermissionKey | None:
    if isinstance(key, PermissionKey):
        return key
    try:
        return PermissionKey(key)
    except ValueError:
        return None


def is_tab_key(key: PermissionKey) -> bool:
    return key in TAB_KEYS


def default_value(key: PermissionKey):
    """Most restrictive value for a key."""
    return TabAccess.NONE if is_tab_key(key) else TaskScope.NO


def value_type(key: PermissionKey):
    return TabAccess if is_tab_key(key) else TaskScope


def matches_user(owner_ref, acting_user_id, acting_email) -> bool:
    """True when a stored owner reference identifies the acting user.

    Owner references are normally user ids; older rows store an e-mail
    address instead, which is compared case-insensitively.
    """
    if owner_ref is None:
        return False
    ref = str(owner_ref).strip()
    if not ref:
        return False
    if acting_user_id is not None and ref == str(acting_user_id).strip():
        return True
    if "@" in ref and acting_email:
        return ref.lower() == str(acting_email).strip().lower()
    return False


@dataclass(frozen=True)
class Actor:
    """Minimal acting identity; ``User`` rows satisfy the same attributes."""

    id: str
    email: str = ""
    name: str = ""
    role: str | None = None


class PermissionResolver:
    """Pure lookups over an AppConfig's role permission matrix."""

    def __init__(self, config, root_email: str | None = None):
        self._config = config
        self._root_email = (root_email or "").strip().lower()

    @property
    def config(self):
        return self._config

    # ── Matrix lookups ──────────────────────────────────────────────────

    def resolve(self, role, key):
        """Return the permission value for (role, key). Never raises."""
        perm_key = normalize_key(key)
        if perm_key is None:
            logger.debug("Unknown permission key %r resolved to default", key)
            return TaskScope.NO
        role_enum = normalize_role(role)
        if role_enum is None:
            return default_value(perm_key)
        row = self._config.role_permissions.get(role_enum) or {}
        value = row.get(perm_key)
        if value is None:
            return default_value(perm_key)
        return value

    @staticmethod
    def cycle(role, key, current):
        """Next value after ``current`` in the fixed order for ``key``.

        An unrecognised ``current`` restarts the cycle at its first value.
        ``role`` is accepted for symmetry with ``resolve``; the order is the
        same for every role.
        """
        perm_key = normalize_key(key)
        order = TAB_CYCLE if perm_key is not None and is_tab_key(perm_key) else SCOPE_CYCLE
        enum_type = type(order[0])
        try:
            idx = order.index(enum_type(current))
        except ValueError:
            return order[0]
        return order[(idx + 1) % len(order)]

    # ── Predicates ──────────────────────────────────────────────────────

    def can_view_tab(self, role, key) -> bool:
        return self.resolve(role, key) in (TabAccess.VIEW, TabAccess.EDIT)

    def can_edit_tab(self, role, key) -> bool:
        return self.resolve(role, key) == TabAccess.EDIT

    def can_edit_all_tasks(self, role) -> bool:
        return self.resolve(role, PermissionKey.EDIT_TASKS) == TaskScope.YES

    def can_edit_own(self, role) -> bool:
        return self.resolve(role, PermissionKey.EDIT_TASKS) == TaskScope.OWN

    def _scoped(self, role, key, owner_ref, acting_user_id, acting_email) -> bool:
        scope = self.resolve(role, key)
        if scope == TaskScope.YES:
            return True
        if scope == TaskScope.OWN:
            return matches_user(owner_ref, acting_user_id, acting_email)
        return False

    def can_edit_task(self, role, task_owner_id, initiative_owner_id,
                      acting_user_id, acting_email) -> bool:
        """Task owner falls back to the parent initiative's owner when unset."""
        owner_ref = task_owner_id or initiative_owner_id
        return self._scoped(role, PermissionKey.EDIT_TASKS, owner_ref, acting_user_id, acting_email)

    def can_delete_task(self, role, task_owner_id, initiative_owner_id,
                        acting_user_id, acting_email) -> bool:
        owner_ref = task_owner_id or initiative_owner_id
        return self._scoped(role, PermissionKey.DELETE_TASKS, owner_ref, acting_user_id, acting_email)

    def can_edit_initiative(self, role, owner_id, acting_user_id, acting_email) -> bool:
        return self._scoped(role, PermissionKey.EDIT_TASKS, owner_id, acting_user_id, acting_email)

    def can_delete_initiative(self, role, owner_id, acting_user_id, acting_email) -> bool:
        return self._scoped(role, PermissionKey.DELETE_TASKS, owner_id, acting_user_id, acting_email)

    def can_create(self, role, owner_id, acting_user_id, acting_email) -> bool:
        """``own`` scope may only create items owned by the acting user."""
        return self._scoped(role, PermissionKey.CREATE_NEW_TASKS, owner_id, acting_user_id, acting_email)

    def is_root_identity(self, email) -> bool:
        return bool(self._root_email) and bool(email) and str(email).strip().lower() == self._root_email

    def can_access_admin(self, role, email=None) -> bool:
        if self.is_root_identity(email):
            return True
        return self.resolve(role, PermissionKey.ACCESS_ADMIN) == TaskScope.YES

    def can_manage_workflows(self, role) -> bool:
        return self.resolve(role, PermissionKey.MANAGE_WORKFLOWS) == TaskScope.YES

    # ── Raising variants ────────────────────────────────────────────────

    def _deny(self, action, key, role, noun):
        granted = self.resolve(role, key)
        granted_value = granted.value if isinstance(granted, Enum) else str(granted)
        if granted == TaskScope.OWN:
            message = f"You can only {action.split('_')[0]} {noun} you own"
        else:
            message = f"You do not have permission to {action.replace('_', ' ')}"
        raise PermissionDenied(
            action,
            required_scope=TaskScope.YES.value if granted == TaskScope.NO else TaskScope.OWN.value,
            granted_scope=granted_value,
            message=message,
        )

    def check_edit_task(self, actor, task_owner_id, initiative_owner_id):
        if not self.can_edit_task(actor.role, task_owner_id, initiative_owner_id, actor.id, actor.email):
            self._deny("edit_task", PermissionKey.EDIT_TASKS, actor.role, "tasks")

    def check_delete_task(self, actor, task_owner_id, initiative_owner_id):
        if not self.can_delete_task(actor.role, task_owner_id, initiative_owner_id, actor.id, actor.email):
            self._deny("delete_task", PermissionKey.DELETE_TASKS, actor.role, "tasks")

    def check_edit_initiative(self, actor, owner_id):
        if not self.can_edit_initiative(actor.role, owner_id, actor.id, actor.email):
            self._deny("edit_initiative", PermissionKey.EDIT_TASKS, actor.role, "initiatives")

    def check_delete_initiative(self, actor, owner_id):
        if not self.can_delete_initiative(actor.role, owner_id, actor.id, actor.email):
            self._deny("delete_initiative", PermissionKey.DELETE_TASKS, actor.role, "initiatives")

    def check_create(self, actor, owner_id):
        if not self.can_create(actor.role, owner_id, actor.id, actor.email):
            self._deny("create_initiative", PermissionKey.CREATE_NEW_TASKS, actor.role, "initiatives")

    def check_view_tab(self, actor, key):
        if not self.can_view_tab(actor.role, key):
            raise PermissionDenied(
                "view_tab",
                required_scope=TabAccess.VIEW.value,
                granted_scope=TabAccess.NONE.value,
                message=f"You do not have access to {PermissionKey(key).value}",
            )

    def check_admin(self, actor):
        if not self.can_access_admin(actor.role, actor.email):
            raise PermissionDenied(
                "access_admin",
                required_scope=TaskScope.YES.value,
                granted_scope=self.resolve(actor.role, PermissionKey.ACCESS_ADMIN).value,
                message="You do not have permission to access the admin panel",
            )
