"""AppConfig normalisation, legacy migration, immutability and persistence."""

import pytest

from workplan.core.exceptions import ValidationError
from workplan.models.auth import Role
from workplan.services import config_service
from workplan.services.app_config import (
    AppConfig,
    migrate_legacy_permissions,
    normalize_permission_value,
)
from workplan.services.permission_service import PermissionKey, TabAccess, TaskScope


class TestNormalisation:
    def test_booleans_map_to_enum_values(self):
        assert normalize_permission_value(PermissionKey.ACCESS_TIMELINE, True) == TabAccess.EDIT
        assert normalize_permission_value(PermissionKey.ACCESS_TIMELINE, False) == TabAccess.NONE
        assert normalize_permission_value(PermissionKey.EDIT_TASKS, True) == TaskScope.YES
        assert normalize_permission_value(PermissionKey.EDIT_TASKS, False) == TaskScope.NO

    def test_strings_are_case_insensitive(self):
        assert normalize_permission_value(PermissionKey.EDIT_TASKS, " OWN ") == TaskScope.OWN

    def test_unknown_value_falls_back_to_default(self):
        assert normalize_permission_value(PermissionKey.EDIT_TASKS, "sometimes") == TaskScope.NO
        assert normalize_permission_value(PermissionKey.ACCESS_ALL_TASKS, 7) == TabAccess.NONE

    def test_from_dict_accepts_camel_case(self):
        config = AppConfig.from_dict({
            "bauBufferSuggestion": 20,
            "teamCapacities": {"u1": "40"},
            "rolePermissions": {"Team Lead": {"editTasks": "yes", "accessTimeline": True}},
        })
        assert config.bau_buffer_suggestion == 20
        assert config.team_capacities["u1"] == 40.0
        row = config.role_permissions[Role.TEAM_LEAD]
        assert row[PermissionKey.EDIT_TASKS] == TaskScope.YES
        assert row[PermissionKey.ACCESS_TIMELINE] == TabAccess.EDIT
        # Keys missing from the payload are denied
        assert row[PermissionKey.DELETE_TASKS] == TaskScope.NO

    def test_from_dict_without_permissions_uses_defaults(self):
        config = AppConfig.from_dict({"teamCapacities": {}})
        assert config.role_permissions[Role.ADMIN][PermissionKey.ACCESS_ADMIN] == TaskScope.YES

    def test_unknown_roles_are_dropped(self):
        config = AppConfig.from_dict({"rolePermissions": {"Intern": {"editTasks": "yes"}}})
        assert "Intern" not in config.to_dict()["rolePermissions"]

    def test_to_dict_round_trips(self):
        config = AppConfig.default().with_capacity("u1", capacity=30, buffer=5)
        assert AppConfig.from_dict(config.to_dict()) == config


class TestLegacyMigration:
    LEGACY = {
        "Team Lead": {"createPlanned": True, "editOwn": True, "accessAdmin": False},
        "Admin": {"createPlanned": True, "editAll": True, "accessAdmin": True,
                  "createWorkflows": True, "manageWorkflows": True},
    }

    def test_legacy_flags_are_translated(self):
        migrated = migrate_legacy_permissions(self.LEGACY)
        assert migrated["Team Lead"]["editTasks"] == "own"
        assert migrated["Team Lead"]["createNewTasks"] == "yes"
        assert migrated["Team Lead"]["deleteTasks"] == "no"
        assert migrated["Admin"]["editTasks"] == "yes"
        assert migrated["Admin"]["accessWorkflows"] == "edit"

    def test_from_dict_migrates_legacy_rows(self):
        config = AppConfig.from_dict({"rolePermissions": self.LEGACY})
        assert config.role_permissions[Role.TEAM_LEAD][PermissionKey.EDIT_TASKS] == TaskScope.OWN
        assert config.role_permissions[Role.ADMIN][PermissionKey.ACCESS_ADMIN] == TaskScope.YES
        # Roles absent from the legacy payload get nothing
        assert config.role_permissions[Role.VP][PermissionKey.EDIT_TASKS] == TaskScope.NO


class TestImmutability:
    def test_mappings_are_read_only(self):
        config = AppConfig.default()
        with pytest.raises(TypeError):
            config.team_capacities["u1"] = 10
        with pytest.raises(TypeError):
            config.role_permissions[Role.ADMIN][PermissionKey.EDIT_TASKS] = TaskScope.NO

    def test_with_permission_returns_new_value(self):
        config = AppConfig.default()
        updated = config.with_permission("Team Lead", "editTasks", "yes")
        assert updated.role_permissions[Role.TEAM_LEAD][PermissionKey.EDIT_TASKS] == TaskScope.YES
        assert config.role_permissions[Role.TEAM_LEAD][PermissionKey.EDIT_TASKS] == TaskScope.OWN

    def test_with_permission_rejects_unknown_key(self):
        with pytest.raises(ValueError):
            AppConfig.default().with_permission("Team Lead", "flyPlanes", "yes")

    def test_sync_capacities_prunes_removed_users(self):
        config = AppConfig.default().with_capacity("u1", capacity=40, buffer=4).with_capacity("u2", capacity=30)
        synced = config.sync_capacities_with_users(["u2"])
        assert dict(synced.team_capacities) == {"u2": 30.0}
        assert dict(synced.team_buffers) == {}


class TestConfigService:
    def test_load_without_row_is_default(self):
        assert config_service.load_config() == AppConfig.default()

    def test_cycle_permission_persists(self):
        config_service.cycle_permission("Team Lead", "editTasks", updated_by="admin")
        loaded = config_service.load_config()
        assert loaded.role_permissions[Role.TEAM_LEAD][PermissionKey.EDIT_TASKS] == TaskScope.NO

    def test_set_permission_unknown_role(self):
        with pytest.raises(ValidationError):
            config_service.set_permission("Intern", "editTasks", "yes")

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValidationError):
            config_service.set_capacity("u1", capacity=-1)

    def test_bau_buffer_bounds(self):
        config_service.set_bau_buffer_suggestion(25)
        assert config_service.load_config().bau_buffer_suggestion == 25
        with pytest.raises(ValidationError):
            config_service.set_bau_buffer_suggestion(120)
