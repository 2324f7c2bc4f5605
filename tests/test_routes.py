"""
API tests: routes wired to in-memory services through dependency overrides.
"""
import pytest
from fastapi.testclient import TestClient

from fakes import FIRM_ID, FakeCollection
from obligation_scheduler.config import create_access_token
from obligation_scheduler.dependencies import (
    get_automation_scheduler,
    get_pattern_service,
    get_template_service,
)
from obligation_scheduler.main import app
from obligation_scheduler.routes.auth.auth import get_current_user, get_users_collection

ADMIN = {"id": "user-admin", "email": "admin@firm.test", "firm_id": FIRM_ID, "role": "Admin"}
EMPLOYEE = {"id": "user-staff", "email": "staff@firm.test", "firm_id": FIRM_ID, "role": "Employee"}

PATTERN_BODY = {
    "name": "Monthly GST Filing",
    "config": {"type": "monthly", "day_of_month": 20},
    "start_date": "2025-01-01",
}


@pytest.fixture
def client(pattern_service, template_service, scheduler):
    app.dependency_overrides[get_pattern_service] = lambda: pattern_service
    app.dependency_overrides[get_template_service] = lambda: template_service
    app.dependency_overrides[get_automation_scheduler] = lambda: scheduler
    app.dependency_overrides[get_current_user] = lambda: ADMIN
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_employee():
    app.dependency_overrides[get_current_user] = lambda: EMPLOYEE


def create_pattern(client, body=None):
    response = client.post("/api/recurrence-patterns/", json=body or PATTERN_BODY)
    assert response.status_code == 201, response.text
    return response.json()["data"]["pattern"]


class TestRecurrencePatternRoutes:
    """Test suite for /api/recurrence-patterns."""

    def test_create_and_list(self, client):
        pattern = create_pattern(client)
        assert pattern["type"] == "monthly"
        assert pattern["frequency_description"] == "Every 1 month(s) on day 20"

        response = client.get("/api/recurrence-patterns/")
        assert response.status_code == 200
        assert [p["id"] for p in response.json()["data"]["patterns"]] == [pattern["id"]]

    def test_invalid_pattern_rejected(self, client):
        response = client.post("/api/recurrence-patterns/", json={
            "name": "Broken",
            "config": {"type": "quarterly", "frequency": 5, "day_of_month": 18},
        })
        assert response.status_code == 422
        assert response.json()["detail"]["message"] == "Invalid recurrence pattern"

    def test_employee_cannot_create(self, client):
        as_employee()
        response = client.post("/api/recurrence-patterns/", json=PATTERN_BODY)
        assert response.status_code == 403

    def test_employee_can_read(self, client):
        pattern = create_pattern(client)
        as_employee()
        response = client.get(f"/api/recurrence-patterns/{pattern['id']}")
        assert response.status_code == 200
        assert response.json()["data"]["pattern"]["name"] == "Monthly GST Filing"

    def test_get_missing(self, client):
        assert client.get("/api/recurrence-patterns/missing").status_code == 404

    def test_filter_by_type(self, client):
        client.post("/api/recurrence-patterns/create-presets")
        response = client.get("/api/recurrence-patterns/", params={"type": "quarterly"})
        names = [p["name"] for p in response.json()["data"]["patterns"]]
        assert names == ["Quarterly GST Filing"]

    def test_create_presets_twice(self, client):
        first = client.post("/api/recurrence-patterns/create-presets").json()
        second = client.post("/api/recurrence-patterns/create-presets").json()
        assert len(first["data"]["presets"]) == 4
        assert second["data"]["presets"] == []

    def test_update(self, client):
        pattern = create_pattern(client)
        response = client.put(f"/api/recurrence-patterns/{pattern['id']}", json={"name": "GSTR-3B"})
        assert response.status_code == 200
        assert response.json()["data"]["pattern"]["name"] == "GSTR-3B"

    def test_update_invalid_and_missing(self, client):
        pattern = create_pattern(client)
        bad = client.put(f"/api/recurrence-patterns/{pattern['id']}", json={
            "config": {"type": "monthly", "frequency": 0, "day_of_month": 1},
        })
        assert bad.status_code == 422
        missing = client.put("/api/recurrence-patterns/missing", json={"name": "x"})
        assert missing.status_code == 404

    def test_delete(self, client):
        pattern = create_pattern(client)
        assert client.delete(f"/api/recurrence-patterns/{pattern['id']}").status_code == 200
        assert client.delete(f"/api/recurrence-patterns/{pattern['id']}").status_code == 404

    def test_preview(self, client):
        pattern = create_pattern(client)
        response = client.post(
            f"/api/recurrence-patterns/{pattern['id']}/preview",
            json={"start_date": "2025-01-01", "count": 3},
        )
        assert response.status_code == 200
        assert response.json()["data"]["occurrences"] == ["2025-01-20", "2025-02-20", "2025-03-20"]

    def test_preview_defaults(self, client):
        pattern = create_pattern(client)
        response = client.post(f"/api/recurrence-patterns/{pattern['id']}/preview")
        assert response.status_code == 200
        assert len(response.json()["data"]["occurrences"]) == 5

    def test_preview_count_limit(self, client):
        pattern = create_pattern(client)
        response = client.post(f"/api/recurrence-patterns/{pattern['id']}/preview", json={"count": 51})
        assert response.status_code == 422

    def test_preview_impossible_pattern(self, client):
        pattern = create_pattern(client, {
            "name": "Never",
            "config": {"type": "custom", "unit": "months", "days_of_month": [31], "months_of_year": [2]},
        })
        response = client.post(f"/api/recurrence-patterns/{pattern['id']}/preview")
        assert response.status_code == 422


class TestTemplateRoutes:
    def test_create_bound_template(self, client):
        pattern = create_pattern(client)
        response = client.post("/api/templates/", json={
            "title": "GST return",
            "category": "gst",
            "pattern_id": pattern["id"],
        })
        assert response.status_code == 201
        template = response.json()["data"]
        assert template["pattern_id"] == pattern["id"]

        fetched = client.get(f"/api/templates/{template['id']}")
        assert fetched.status_code == 200

    def test_unknown_pattern_rejected(self, client):
        response = client.post("/api/templates/", json={"title": "x", "pattern_id": "missing"})
        assert response.status_code == 404

    def test_missing_template(self, client):
        assert client.get("/api/templates/missing").status_code == 404


class TestAutomationRoutes:
    def _bound_template(self, client):
        pattern = create_pattern(client)
        response = client.post("/api/templates/", json={"title": "GST return", "pattern_id": pattern["id"]})
        return response.json()["data"]

    def test_settings_roundtrip(self, client):
        assert client.get("/api/automation/settings").json()["data"]["enabled"] is False

        response = client.put("/api/automation/settings", json={"enabled": True, "auto_run_time": "07:30"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["enabled"] is True
        assert data["auto_run_time"] == "07:30"

    def test_settings_bad_time(self, client):
        response = client.put("/api/automation/settings", json={"enabled": True, "auto_run_time": "25:00"})
        assert response.status_code == 422

    def test_settings_admin_only(self, client):
        as_employee()
        response = client.put("/api/automation/settings", json={"enabled": True})
        assert response.status_code == 403

    def test_generate_now_twice(self, client, instance_collection):
        self._bound_template(client)

        first = client.post("/api/automation/generate")
        second = client.post("/api/automation/generate")

        assert first.status_code == 200
        assert first.json()["data"]["count"] == 1
        assert second.json()["data"]["count"] == 0
        assert len(instance_collection.docs) == 1

    def test_stats_and_schedules(self, client):
        template = self._bound_template(client)

        stats = client.get("/api/automation/stats").json()["data"]
        assert stats["total_schedules"] == 1
        assert stats["active_schedules"] == 1

        schedules = client.get("/api/automation/schedules").json()["data"]
        assert schedules[0]["template_id"] == template["id"]
        assert schedules[0]["next_run"] is not None

    def test_toggle_schedule(self, client):
        template = self._bound_template(client)

        response = client.put(f"/api/automation/schedules/{template['id']}/toggle")
        assert response.json()["data"] == {"template_id": template["id"], "is_active": False}

        response = client.put(f"/api/automation/schedules/{template['id']}/toggle")
        assert response.json()["data"]["is_active"] is True

        assert client.put("/api/automation/schedules/missing/toggle").status_code == 404


class TestAuthentication:
    @pytest.fixture
    def jwt_client(self, pattern_service):
        users = FakeCollection()
        users.docs.append({"_id": "user-admin", "email": "admin@firm.test", "firm_id": FIRM_ID, "role": "Owner"})
        users.docs.append({"_id": "user-orphan", "email": "orphan@firm.test"})
        app.dependency_overrides[get_pattern_service] = lambda: pattern_service
        app.dependency_overrides[get_users_collection] = lambda: users
        yield TestClient(app)
        app.dependency_overrides.clear()

    def _headers(self, user_id):
        return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}

    def test_valid_token(self, jwt_client):
        response = jwt_client.post(
            "/api/recurrence-patterns/", json=PATTERN_BODY, headers=self._headers("user-admin")
        )
        assert response.status_code == 201
        assert response.json()["data"]["pattern"]["firm_id"] == FIRM_ID

    def test_missing_token(self, jwt_client):
        assert jwt_client.get("/api/recurrence-patterns/").status_code == 401

    def test_garbage_token(self, jwt_client):
        response = jwt_client.get("/api/recurrence-patterns/", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_user_without_firm(self, jwt_client):
        response = jwt_client.get("/api/recurrence-patterns/", headers=self._headers("user-orphan"))
        assert response.status_code == 401

    def test_unknown_user(self, jwt_client):
        response = jwt_client.get("/api/recurrence-patterns/", headers=self._headers("user-ghost"))
        assert response.status_code == 401


def test_root(client):
    body = client.get("/").json()
    assert body["status"] == "running"
