"""
Permission resolution over the role matrix.

Covers:
  - default-deny for unset pairs, unknown roles and unknown keys
  - own-scope ownership matching (id and legacy e-mail owner refs)
  - the fixed cycle order of the admin matrix editor
  - root identity limited to the admin gate
"""

import pytest

from workplan.core.exceptions import PermissionDenied
from workplan.models.auth import Role
from workplan.services.app_config import AppConfig
from workplan.services.permission_service import (
    Actor,
    PermissionKey,
    PermissionResolver,
    TabAccess,
    TaskScope,
    matches_user,
)

ROOT = "root@example.com"


@pytest.fixture()
def resolver():
    return PermissionResolver(AppConfig.default(), root_email=ROOT)


@pytest.fixture()
def empty_resolver():
    return PermissionResolver(AppConfig(), root_email=ROOT)


class TestResolve:
    def test_default_matrix_values(self, resolver):
        assert resolver.resolve(Role.TEAM_LEAD, PermissionKey.EDIT_TASKS) == TaskScope.OWN
        assert resolver.resolve(Role.ADMIN, PermissionKey.DELETE_TASKS) == TaskScope.YES
        assert resolver.resolve(Role.TEAM_LEAD, PermissionKey.ACCESS_WORKPLAN_HEALTH) == TabAccess.NONE

    def test_role_strings_are_normalised(self, resolver):
        assert resolver.resolve("Team Lead", "editTasks") == TaskScope.OWN
        assert resolver.resolve("team_lead", "editTasks") == TaskScope.OWN

    @pytest.mark.parametrize("key", list(PermissionKey))
    def test_empty_matrix_denies_everything(self, empty_resolver, key):
        value = empty_resolver.resolve(Role.ADMIN, key)
        assert value in (TabAccess.NONE, TaskScope.NO)

    def test_unknown_role_is_denied(self, resolver):
        assert resolver.resolve("Intern", PermissionKey.EDIT_TASKS) == TaskScope.NO
        assert resolver.resolve(None, PermissionKey.ACCESS_ALL_TASKS) == TabAccess.NONE

    def test_unknown_key_is_denied(self, resolver):
        assert resolver.resolve(Role.ADMIN, "launchRockets") == TaskScope.NO

    def test_resolve_every_pair_returns_one_value(self, resolver):
        for role in Role:
            for key in PermissionKey:
                assert resolver.resolve(role, key) is not None


class TestPredicates:
    def test_tab_access_levels(self, resolver):
        assert resolver.can_view_tab(Role.TEAM_LEAD, PermissionKey.ACCESS_DEPENDENCIES)
        assert not resolver.can_edit_tab(Role.TEAM_LEAD, PermissionKey.ACCESS_DEPENDENCIES)
        assert not resolver.can_view_tab(Role.TEAM_LEAD, PermissionKey.ACCESS_WORKPLAN_HEALTH)
        assert resolver.can_edit_tab(Role.VP, PermissionKey.ACCESS_TIMELINE)

    def test_task_scope_predicates(self, resolver):
        assert resolver.can_edit_all_tasks(Role.VP)
        assert not resolver.can_edit_own(Role.VP)
        assert resolver.can_edit_own(Role.TEAM_LEAD)
        assert not resolver.can_edit_all_tasks(Role.TEAM_LEAD)

    def test_manage_workflows(self, resolver):
        assert resolver.can_manage_workflows(Role.PORTFOLIO_OPS)
        assert not resolver.can_manage_workflows(Role.TEAM_LEAD)
        assert not resolver.can_manage_workflows("Intern")


class TestOwnership:
    def test_own_scope_matches_id(self, resolver):
        assert resolver.can_edit_task(Role.TEAM_LEAD, "u1", "u2", "u1", "a@example.com")
        assert not resolver.can_edit_task(Role.TEAM_LEAD, "u3", "u2", "u1", "a@example.com")

    def test_task_owner_falls_back_to_initiative_owner(self, resolver):
        assert resolver.can_edit_task(Role.TEAM_LEAD, None, "u1", "u1", None)
        assert not resolver.can_edit_task(Role.TEAM_LEAD, "", "u2", "u1", None)

    def test_email_owner_ref_is_case_insensitive(self):
        assert matches_user("Jane.Doe@Example.com", "u1", "jane.doe@example.com")
        assert not matches_user("someone@example.com", "u1", "jane.doe@example.com")
        assert not matches_user(None, "u1", "jane.doe@example.com")

    def test_yes_scope_edits_anything(self, resolver):
        assert resolver.can_edit_task(Role.VP, "u9", "u8", "u1", None)

    def test_no_scope_edits_nothing(self, resolver):
        assert not resolver.can_delete_task(Role.VP, "u1", "u1", "u1", None)

    def test_check_edit_task_ownership_failure(self, resolver):
        actor = Actor(id="u1", email="a@example.com", role=Role.TEAM_LEAD.value)
        with pytest.raises(PermissionDenied) as exc:
            resolver.check_edit_task(actor, "u2", "u2")
        assert exc.value.is_ownership_failure
        assert exc.value.message == "You can only edit tasks you own"

    def test_check_delete_task_plain_denial(self, resolver):
        actor = Actor(id="u1", role=Role.VP.value)
        with pytest.raises(PermissionDenied) as exc:
            resolver.check_delete_task(actor, "u1", "u1")
        assert not exc.value.is_ownership_failure
        assert exc.value.granted_scope == "no"

    def test_own_create_only_for_self(self):
        config = AppConfig.default().with_permission(Role.TEAM_LEAD, PermissionKey.CREATE_NEW_TASKS, "own")
        resolver = PermissionResolver(config)
        assert resolver.can_create(Role.TEAM_LEAD, "u1", "u1", None)
        assert not resolver.can_create(Role.TEAM_LEAD, "u2", "u1", None)


class TestCycle:
    def test_scope_cycle(self):
        assert PermissionResolver.cycle(Role.ADMIN, PermissionKey.EDIT_TASKS, "no") == TaskScope.YES
        assert PermissionResolver.cycle(Role.ADMIN, PermissionKey.EDIT_TASKS, "yes") == TaskScope.OWN
        assert PermissionResolver.cycle(Role.ADMIN, PermissionKey.EDIT_TASKS, "own") == TaskScope.NO

    def test_tab_cycle(self):
        assert PermissionResolver.cycle(Role.ADMIN, PermissionKey.ACCESS_TIMELINE, "none") == TabAccess.VIEW
        assert PermissionResolver.cycle(Role.ADMIN, PermissionKey.ACCESS_TIMELINE, "view") == TabAccess.EDIT
        assert PermissionResolver.cycle(Role.ADMIN, PermissionKey.ACCESS_TIMELINE, "edit") == TabAccess.NONE

    def test_unrecognised_value_restarts(self):
        assert PermissionResolver.cycle(Role.ADMIN, PermissionKey.ACCESS_TIMELINE, True) == TabAccess.NONE
        assert PermissionResolver.cycle(Role.ADMIN, PermissionKey.DELETE_TASKS, "maybe") == TaskScope.NO


class TestRootIdentity:
    def test_root_passes_admin_gate_regardless_of_role(self, resolver):
        assert resolver.can_access_admin(Role.TEAM_LEAD, "ROOT@example.com")
        assert not resolver.can_access_admin(Role.TEAM_LEAD, "jane.doe@example.com")

    def test_root_gets_nothing_else(self, resolver):
        assert resolver.is_root_identity(ROOT)
        assert not resolver.can_delete_initiative(Role.DIRECTOR_DEPARTMENT, "u2", "u1", ROOT)

    def test_admin_role_passes_without_root(self, resolver):
        assert resolver.can_access_admin(Role.ADMIN, "admin@example.com")

    def test_check_admin_raises(self, resolver):
        with pytest.raises(PermissionDenied):
            resolver.check_admin(Actor(id="u1", email="x@example.com", role=Role.VP.value))
