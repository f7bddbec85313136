"""
Tests for /api/v1/schedules

Authentication, scheduler role checks, CRUD and on-read evaluation.
"""
import pytest
from datetime import date

from tests.factories import create_test_equipment, create_test_schedule

BASE = "/api/v1/schedules"


@pytest.mark.api
class TestAuthentication:
    def test_missing_token_is_401(self, client):
        response = client.get(BASE + "/")
        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_ERROR"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_garbage_token_is_401(self, client):
        response = client.get(BASE + "/", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.headers["X-Content-Type-Options"] == "nosniff"


@pytest.mark.api
class TestCreateSchedule:
    def test_technician_cannot_create(self, client, db_session, technician_headers):
        unit = create_test_equipment(db_session)
        response = client.post(
            BASE + "/",
            json={"equipment_id": unit.id, "name": "PM", "maintenance_type": "preventive",
                  "frequency_value": 90, "frequency_unit": "days"},
            headers=technician_headers,
        )
        assert response.status_code == 403
        assert response.json()["error"] == "PERMISSION_DENIED"

    def test_manager_creates_with_evaluation(self, client, db_session, manager_headers):
        unit = create_test_equipment(db_session)
        response = client.post(
            BASE + "/",
            json={"equipment_id": unit.id, "name": "Quarterly PM", "maintenance_type": "preventive",
                  "frequency_value": 3, "frequency_unit": "months", "warning_days": 14},
            headers=manager_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Quarterly PM"
        assert data["evaluation"]["status"] == "ok"
        assert data["is_active"] is True

    def test_schedule_without_trigger_rejected(self, client, db_session, manager_headers):
        unit = create_test_equipment(db_session)
        response = client.post(
            BASE + "/",
            json={"equipment_id": unit.id, "name": "Nothing", "maintenance_type": "other"},
            headers=manager_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_malformed_body_is_422(self, client, manager_headers):
        response = client.post(BASE + "/", json={"name": "No equipment"}, headers=manager_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.api
class TestEvaluateSchedule:
    @pytest.fixture
    def schedule(self, db_session):
        unit = create_test_equipment(db_session)
        return create_test_schedule(db_session, unit, frequency_value=90, last_completed_at=date(2026, 1, 1))

    def test_warning_before_due(self, client, schedule, technician_headers):
        response = client.get(
            f"{BASE}/{schedule.id}/evaluate", params={"as_of": "2026-03-28"}, headers=technician_headers
        )
        assert response.status_code == 200
        evaluation = response.json()["evaluation"]
        assert evaluation["status"] == "warning"
        assert evaluation["next_due_at"] == "2026-04-01"
        assert evaluation["days_until_due"] == 4

    def test_overdue_after_due(self, client, schedule, technician_headers):
        response = client.get(
            f"{BASE}/{schedule.id}/evaluate", params={"as_of": "2026-04-02"}, headers=technician_headers
        )
        assert response.json()["evaluation"]["status"] == "overdue"
        assert response.json()["evaluation"]["days_until_due"] == -1

    def test_other_tenant_gets_404(self, client, schedule, outsider_headers):
        response = client.get(f"{BASE}/{schedule.id}", headers=outsider_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


@pytest.mark.api
class TestUpdateAndList:
    def test_update_and_deactivate(self, client, db_session, manager_headers):
        unit = create_test_equipment(db_session)
        schedule = create_test_schedule(db_session, unit)

        response = client.patch(f"{BASE}/{schedule.id}", json={"warning_days": 10}, headers=manager_headers)
        assert response.status_code == 200
        assert response.json()["warning_days"] == 10

        response = client.post(f"{BASE}/{schedule.id}/deactivate", headers=manager_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        listed = client.get(BASE + "/", headers=manager_headers).json()
        assert listed["pagination"]["total"] == 0

    @pytest.mark.parametrize("field", ["name", "is_active", "is_regulatory_requirement"])
    def test_null_required_field_is_400(self, client, db_session, manager_headers, field):
        unit = create_test_equipment(db_session)
        schedule = create_test_schedule(db_session, unit)

        response = client.patch(f"{BASE}/{schedule.id}", json={field: None}, headers=manager_headers)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["field"] == field

        assert client.get(f"{BASE}/{schedule.id}", headers=manager_headers).status_code == 200

    def test_list_overdue_only(self, client, db_session, manager_headers):
        unit = create_test_equipment(db_session)
        overdue = create_test_schedule(db_session, unit, frequency_value=30, last_completed_at=date(2026, 1, 1))
        create_test_schedule(db_session, unit, frequency_value=365, last_completed_at=date(2026, 1, 1))

        response = client.get(
            BASE + "/", params={"overdue_only": True, "as_of": "2026-03-01"}, headers=manager_headers
        )
        assert response.status_code == 200
        assert [item["id"] for item in response.json()["items"]] == [overdue.id]

    def test_overdue_sweep_requires_scheduler(self, client, technician_headers):
        response = client.post(BASE + "/overdue-sweep", headers=technician_headers)
        assert response.status_code == 403

    def test_overdue_sweep_reports_requests(self, client, db_session, manager_headers):
        unit = create_test_equipment(db_session)
        schedule = create_test_schedule(db_session, unit, frequency_value=30, last_completed_at=date(2026, 1, 1))

        response = client.post(
            BASE + "/overdue-sweep", params={"as_of": "2026-03-01", "auto_create": True}, headers=manager_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["overdue"] == 1
        assert [r["schedule_id"] for r in data["requests"]] == [schedule.id]
        assert len(data["created_work_order_ids"]) == 1
