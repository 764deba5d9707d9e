"""
Admin panel API — users, permission matrix, capacity — and the metrics endpoints.

Covers:
  - admin gate (role permission and root identity)
  - user CRUD, duplicate e-mail, self-delete refusal, capacity seeding/pruning
  - matrix cycle / set with persistence
  - capacity settings and metrics payloads
"""

import pytest

from workplan.models import db
from workplan.services import config_service, user_service


def _h(user):
    return {"X-User-Email": user.email}


class TestAdminGate:
    def test_no_user_is_401(self, client):
        assert client.get("/api/v1/admin/users").status_code == 401

    def test_team_lead_is_403(self, client, users):
        assert client.get("/api/v1/admin/users", headers=_h(users["lead"])).status_code == 403

    def test_admin_role_passes(self, client, users):
        res = client.get("/api/v1/admin/users", headers=_h(users["admin"]))
        assert res.status_code == 200
        assert res.get_json()["total"] == len(users)

    def test_root_identity_passes_with_team_lead_role(self, client, users):
        assert client.get("/api/v1/admin/config", headers=_h(users["root"])).status_code == 200

    def test_unknown_header_is_401(self, client, users):
        res = client.get("/api/v1/admin/users", headers={"X-User-Email": "ghost@example.com"})
        assert res.status_code == 401


class TestUsersAPI:
    def test_create_user_seeds_capacity(self, client, users):
        res = client.post("/api/v1/admin/users",
                          json={"email": "new.lead@example.com", "name": "New Lead", "role": "Team Lead"},
                          headers=_h(users["admin"]))
        assert res.status_code == 201
        new_id = res.get_json()["id"]
        assert config_service.load_config().team_capacities[new_id] == 40

    def test_duplicate_email_returns_existing(self, client, users):
        res = client.post("/api/v1/admin/users",
                          json={"email": "JANE.DOE@example.com", "name": "Again"},
                          headers=_h(users["admin"]))
        assert res.status_code == 200
        body = res.get_json()
        assert body["created"] is False
        assert body["id"] == "lead"

    def test_invalid_email_is_422(self, client, users):
        res = client.post("/api/v1/admin/users", json={"email": "not-an-email", "name": "X"},
                          headers=_h(users["admin"]))
        assert res.status_code == 422

    def test_update_role(self, client, users):
        res = client.put("/api/v1/admin/users/vp", json={"role": "SVP"}, headers=_h(users["admin"]))
        assert res.status_code == 200
        assert res.get_json()["role"] == "SVP"

    def test_update_to_taken_email_is_409(self, client, users):
        res = client.put("/api/v1/admin/users/vp", json={"email": "sam.lee@example.com"},
                         headers=_h(users["admin"]))
        assert res.status_code == 409
        assert res.get_json()["details"] == {"field": "email"}

    def test_update_missing_user_is_404(self, client, users):
        res = client.put("/api/v1/admin/users/nope", json={"name": "x"}, headers=_h(users["admin"]))
        assert res.status_code == 404

    def test_cannot_delete_self(self, client, users):
        res = client.delete("/api/v1/admin/users/admin", headers=_h(users["admin"]))
        assert res.status_code == 422

    def test_delete_prunes_capacity(self, client, users):
        config_service.set_capacity("other_lead", capacity=30)
        config_service.set_capacity("lead", capacity=40)
        db.session.commit()

        res = client.delete("/api/v1/admin/users/other_lead", headers=_h(users["admin"]))
        assert res.status_code == 200
        capacities = client.get("/api/v1/admin/config", headers=_h(users["admin"])).get_json()["teamCapacities"]
        assert capacities == {"lead": 40}

    def test_import_users(self, client, users):
        rows = [
            {"is_valid": True, "data": {"email": "a.b@example.com", "name": "A B", "role": "VP"}},
            {"is_valid": True, "data": {"email": "jane.doe@example.com", "name": "Dup"}},
            {"is_valid": False, "error": "missing name"},
        ]
        res = client.post("/api/v1/admin/users/import", json={"rows": rows}, headers=_h(users["admin"]))
        assert res.status_code == 201
        body = res.get_json()
        assert len(body["created"]) == 1
        assert [s["error"] for s in body["skipped"]] == ["duplicate email", "missing name"]


class TestPermissionsAPI:
    def test_cycle_cell(self, client, users):
        res = client.post("/api/v1/admin/permissions/cycle", json={"role": "Team Lead", "key": "deleteTasks"},
                          headers=_h(users["admin"]))
        assert res.status_code == 200
        assert res.get_json()["Team Lead"]["deleteTasks"] == "no"

        matrix = client.get("/api/v1/admin/permissions", headers=_h(users["admin"])).get_json()
        assert matrix["Team Lead"]["deleteTasks"] == "no"

    def test_set_cell_normalises_booleans(self, client, users):
        res = client.put("/api/v1/admin/permissions",
                         json={"role": "VP", "key": "accessWorkplanHealth", "value": False},
                         headers=_h(users["admin"]))
        assert res.get_json()["VP"]["accessWorkplanHealth"] == "none"

    def test_matrix_change_takes_effect(self, client, users):
        created = client.post("/api/v1/initiatives", json={"title": "x"}, headers=_h(users["lead"])).get_json()
        client.put("/api/v1/admin/permissions", json={"role": "Team Lead", "key": "editTasks", "value": "no"},
                   headers=_h(users["admin"]))

        res = client.patch(f"/api/v1/initiatives/{created['id']}", json={"field": "priority", "value": "P0"},
                           headers=_h(users["lead"]))
        assert res.status_code == 403

    def test_unknown_key_is_422(self, client, users):
        res = client.put("/api/v1/admin/permissions", json={"role": "VP", "key": "nope", "value": "yes"},
                         headers=_h(users["admin"]))
        assert res.status_code == 422


class TestCapacityAndMetrics:
    def test_capacity_update_and_report(self, client, users):
        admin = _h(users["admin"])
        res = client.put("/api/v1/admin/capacity/lead", json={"capacity": 20, "buffer": 4, "adjustment": 1},
                         headers=admin)
        assert res.status_code == 200
        client.post("/api/v1/initiatives", json={"title": "x", "estimated_effort": 30}, headers=_h(users["lead"]))

        report = client.get("/api/v1/metrics/capacity/lead").get_json()
        assert report["effective_capacity"] == 15
        assert report["utilization"]["value"] == pytest.approx(200)
        assert report["utilization"]["display"] == 100
        assert report["over_capacity"] is True

    def test_team_metrics_defaults_to_configured_owners(self, client, users):
        client.put("/api/v1/admin/capacity/lead", json={"capacity": 10}, headers=_h(users["admin"]))
        metrics = client.get("/api/v1/metrics/capacity").get_json()
        assert [o["owner_id"] for o in metrics["owners"]] == ["lead"]

    def test_reports_use_configured_days_per_week(self, client, app, users, monkeypatch):
        monkeypatch.setitem(app.config, "DAYS_PER_WEEK", 4)
        client.put("/api/v1/admin/capacity/lead", json={"capacity": 10}, headers=_h(users["admin"]))

        report = client.get("/api/v1/metrics/capacity/lead").get_json()
        assert report["days"]["effective_capacity"] == 40
        assert report["hours"]["effective_capacity"] == 320
        metrics = client.get("/api/v1/metrics/capacity").get_json()
        assert metrics["days"]["total_capacity"] == 40

    def test_negative_capacity_is_422(self, client, users):
        res = client.put("/api/v1/admin/capacity/lead", json={"capacity": -5}, headers=_h(users["admin"]))
        assert res.status_code == 422

    def test_bau_buffer(self, client, users):
        res = client.put("/api/v1/admin/bau-buffer", json={"value": 20}, headers=_h(users["admin"]))
        assert res.get_json()["bauBufferSuggestion"] == 20


class TestUserService:
    def test_create_returns_existing_for_duplicate(self, users):
        user, created = user_service.create_user(email="sam.lee@example.com", name="Sam")
        assert created is False
        assert user.id == "other_lead"

    def test_non_owner_role_gets_no_capacity(self, users):
        user, _ = user_service.create_user(email="ops2@example.com", name="Ops Two", role="Portfolio Operations")
        assert user.id not in config_service.load_config().team_capacities
