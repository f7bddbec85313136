"""
Tests for /api/v1/records, /api/v1/equipment and /api/v1/compliance
"""
import pytest
from datetime import datetime, time
from decimal import Decimal

from tests.factories import (
    create_test_downtime,
    create_test_equipment,
    create_test_receipt,
    create_test_record,
    create_test_schedule,
    create_test_work_order,
    days_ago,
)

RECORDS = "/api/v1/records"
EQUIPMENT = "/api/v1/equipment"
COMPLIANCE = "/api/v1/compliance/elements/7"


@pytest.fixture
def documented_unit(db_session):
    """One forklift with a schedule, some work and receipts"""
    unit = create_test_equipment(db_session, equipment_code="FL-7")
    create_test_schedule(db_session, unit)
    create_test_record(db_session, unit, performed_at=days_ago(30), labor_cost="100", parts_cost="40")
    create_test_work_order(
        db_session, unit, status="closed", maintenance_type="preventive",
        completed_at=datetime.combine(days_ago(2), time(12)),
    )
    create_test_receipt(db_session, unit, receipt_date=days_ago(30), total_amount="60.00")
    return unit


@pytest.mark.api
class TestRecordEndpoints:
    def test_create_record(self, client, db_session, technician_headers):
        unit = create_test_equipment(db_session)
        response = client.post(
            RECORDS + "/",
            json={"equipment_id": unit.id, "record_type": "inspection_daily", "title": "Pre-shift check",
                  "performed_at": days_ago(0).isoformat(), "passed": True,
                  "labor_cost": "20.00", "parts_cost": "5.00"},
            headers=technician_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert Decimal(str(data["total_cost"])) == Decimal("25")

        fetched = client.get(f"{RECORDS}/{data['id']}", headers=technician_headers)
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "Pre-shift check"

    def test_create_receipt_derives_equipment(self, client, db_session, technician_headers):
        unit = create_test_equipment(db_session)
        record = create_test_record(db_session, unit)
        response = client.post(
            RECORDS + "/receipts",
            json={"maintenance_record_id": record.id, "receipt_date": days_ago(1).isoformat(),
                  "vendor_name": "Hoist Parts Co", "total_amount": "44.00"},
            headers=technician_headers,
        )
        assert response.status_code == 201
        assert response.json()["equipment_id"] == unit.id

        listed = client.get(RECORDS + "/receipts", headers=technician_headers).json()
        assert listed["pagination"]["total"] == 1

    def test_list_records_newest_first(self, client, db_session, technician_headers):
        unit = create_test_equipment(db_session)
        old = create_test_record(db_session, unit, performed_at=days_ago(9))
        new = create_test_record(db_session, unit, performed_at=days_ago(1))
        response = client.get(RECORDS + "/", headers=technician_headers)
        assert [item["id"] for item in response.json()["items"]] == [new.id, old.id]

    def test_other_tenant_record_is_404(self, client, db_session, outsider_headers):
        unit = create_test_equipment(db_session)
        record = create_test_record(db_session, unit)
        assert client.get(f"{RECORDS}/{record.id}", headers=outsider_headers).status_code == 404


@pytest.mark.api
class TestEquipmentEndpoints:
    def test_costs(self, client, documented_unit, technician_headers):
        response = client.get(f"{EQUIPMENT}/{documented_unit.id}/costs", headers=technician_headers)
        assert response.status_code == 200
        data = response.json()
        assert Decimal(str(data["total"])) == Decimal("200")
        assert len(data["monthly_trend"]) == 12

    def test_availability_window(self, client, db_session, technician_headers):
        unit = create_test_equipment(db_session)
        create_test_downtime(
            db_session, unit, started_at=datetime(2026, 3, 2, 0, 0), ended_at=datetime(2026, 3, 2, 12, 0)
        )
        response = client.get(
            f"{EQUIPMENT}/{unit.id}/availability",
            params={"window_start": "2026-03-01T00:00:00", "window_end": "2026-03-03T00:00:00"},
            headers=technician_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert Decimal(str(data["availability_percent"])) == Decimal("75")
        assert data["breakdown_count"] == 1

    def test_history(self, client, documented_unit, technician_headers):
        response = client.get(f"{EQUIPMENT}/{documented_unit.id}/history", headers=technician_headers)
        assert response.status_code == 200
        kinds = {entry["kind"] for entry in response.json()["entries"]}
        assert kinds == {"schedule", "record", "work_order", "receipt"}

    @pytest.mark.parametrize("path", ["costs", "availability", "history"])
    def test_other_tenant_is_404(self, client, documented_unit, outsider_headers, path):
        response = client.get(f"{EQUIPMENT}/{documented_unit.id}/{path}", headers=outsider_headers)
        assert response.status_code == 404


@pytest.mark.api
class TestComplianceEndpoints:
    def test_full_score(self, client, documented_unit, technician_headers):
        response = client.get(COMPLIANCE + "/score", headers=technician_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "full"
        assert len(data["sub_scores"]) == 6
        assert data["evidence"] is None
        assert {gap["sub_requirement_id"] for gap in data["gaps"]} >= {"elem7_inspections"}

    def test_expired_certification_listed_as_gap(self, client, db_session, technician_headers):
        unit = create_test_equipment(db_session, equipment_code="CRANE-3", certifications_required=["load_test"])
        create_test_record(
            db_session, unit, record_type="certification_renewal", performed_at=days_ago(200),
            is_certification_record=True, certification_type="load_test", certification_expiry=days_ago(30),
        )
        data = client.get(COMPLIANCE + "/score", headers=technician_headers).json()
        scores = {sub["sub_requirement_id"]: sub for sub in data["sub_scores"]}
        assert scores["elem7_certifications"]["score"] == 0
        gap = next(gap for gap in data["gaps"] if gap["sub_requirement_id"] == "elem7_certifications")
        assert gap["affected_equipment"] == ["CRANE-3"]
        assert any(rec.startswith("Certifications Current: ") for rec in data["recommendations"])
        assert data["strengths"] == []

    def test_quick_score_matches_full(self, client, documented_unit, technician_headers):
        full = client.get(COMPLIANCE + "/score", headers=technician_headers).json()
        quick = client.get(COMPLIANCE + "/score", params={"mode": "quick"}, headers=technician_headers).json()
        assert quick["mode"] == "quick"
        assert "sub_scores" not in quick
        assert quick["overall_score"] == full["overall_score"]

    def test_summary(self, client, documented_unit, technician_headers):
        response = client.get(COMPLIANCE + "/summary", headers=technician_headers)
        assert response.status_code == 200
        counts = {c["sub_requirement_id"]: c["evidence_count"] for c in response.json()["counts"]}
        assert counts["elem7_preventive"] == 2
        assert counts["elem7_documentation"] == 1

    def test_unknown_element_is_404(self, client, technician_headers):
        response = client.get("/api/v1/compliance/elements/99/score", headers=technician_headers)
        assert response.status_code == 404

    @pytest.mark.parametrize("fmt,media_type", [
        ("json", "application/json"), ("csv", "text/csv"), ("html", "text/html"),
    ])
    def test_export(self, client, documented_unit, technician_headers, fmt, media_type):
        response = client.get(COMPLIANCE + "/export", params={"format": fmt}, headers=technician_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(media_type)
        assert response.headers["content-disposition"] == f"attachment; filename=element-7-evidence.{fmt}"
        assert "FL-7" in response.text

    def test_scope_is_per_tenant(self, client, documented_unit, outsider_headers):
        data = client.get(COMPLIANCE + "/score", headers=outsider_headers).json()
        assert data["equipment_count"] == 0
        assert data["overall_score"] == 0
