"""
Unit Tests for the Cost Aggregator
"""
import pytest
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

from app.exceptions import NotFoundError, ValidationError
from app.services.cost_service import equipment_costs, rollup_costs, trend_months

from tests.factories import (
    create_test_equipment,
    create_test_receipt,
    create_test_record,
    create_test_work_order,
    days_ago,
)

PERIOD_START = date(2026, 1, 1)
PERIOD_END = date(2026, 3, 31)


def record(id, performed_at, labor=None, parts=None, total=None, work_order_id=None):
    return SimpleNamespace(
        id=id,
        performed_at=performed_at,
        labor_cost=Decimal(labor) if labor is not None else None,
        parts_cost=Decimal(parts) if parts is not None else None,
        total_cost=Decimal(total) if total is not None else None,
        work_order_id=work_order_id,
    )


def receipt(receipt_date, amount, maintenance_record_id=None):
    return SimpleNamespace(
        receipt_date=receipt_date,
        total_amount=Decimal(amount),
        maintenance_record_id=maintenance_record_id,
    )


def work_order(id, completed_on, actual=None, estimated=None, status="completed"):
    return SimpleNamespace(
        id=id,
        status=status,
        completed_at=datetime.combine(completed_on, datetime.min.time()),
        requested_date=completed_on,
        actual_cost=Decimal(actual) if actual is not None else None,
        estimated_cost=Decimal(estimated) if estimated is not None else None,
    )


@pytest.fixture
def rollup():
    records = [
        record(1, date(2026, 2, 10), labor="100", parts="50", total="200"),
        record(2, date(2026, 3, 1), parts="30"),
        record(3, date(2026, 3, 5), labor="80", work_order_id=11),
        record(4, date(2025, 6, 15), labor="40"),
    ]
    receipts = [
        receipt(date(2026, 2, 15), "120"),
        receipt(date(2026, 2, 16), "999", maintenance_record_id=1),
    ]
    orders = [
        work_order(11, date(2026, 3, 5), actual="500", estimated="400"),
        work_order(12, date(2026, 3, 10), actual="75", estimated="60"),
        work_order(13, date(2026, 3, 12), actual="1000", estimated="900", status="cancelled"),
    ]
    return rollup_costs(7, records, receipts, orders, PERIOD_START, PERIOD_END)


class TestRollupCosts:
    def test_categories_are_disjoint_and_sum_to_total(self, rollup):
        by = rollup.by_category
        assert by.labor == Decimal("180")
        assert by.parts == Decimal("80")
        assert by.other == Decimal("50")
        assert by.external == Decimal("120")
        assert by.work_orders == Decimal("75")
        assert rollup.total == by.labor + by.parts + by.other + by.external + by.work_orders
        assert rollup.total == Decimal("505")

    def test_counts_cover_period_only(self, rollup):
        assert rollup.record_count == 3
        assert rollup.receipt_count == 1
        assert rollup.work_order_count == 2

    def test_cancelled_orders_carry_no_spend(self, rollup):
        assert rollup.work_order_estimated_total == Decimal("460")
        assert rollup.work_order_actual_total == Decimal("575")

    def test_monthly_trend_covers_twelve_months(self, rollup):
        months = [bucket.month for bucket in rollup.monthly_trend]
        assert months == trend_months(PERIOD_END)
        assert months[0] == "2025-04"
        assert months[-1] == "2026-03"

        trend = {bucket.month: bucket.total for bucket in rollup.monthly_trend}
        assert trend["2025-06"] == Decimal("40")
        assert trend["2026-01"] == Decimal("0")
        assert trend["2026-02"] == Decimal("320")
        assert trend["2026-03"] == Decimal("185")

    def test_missing_costs_count_as_zero(self):
        stats = rollup_costs(
            1,
            [record(1, date(2026, 1, 5))],
            [SimpleNamespace(receipt_date=date(2026, 1, 6), total_amount=None, maintenance_record_id=None)],
            [work_order(2, date(2026, 1, 7))],
            PERIOD_START,
            PERIOD_END,
        )
        assert stats.total == Decimal("0")
        assert stats.record_count == 1
        assert stats.work_order_count == 1

    def test_inverted_period_rejected(self):
        with pytest.raises(ValidationError):
            rollup_costs(1, [], [], [], PERIOD_END, PERIOD_START)


class TestTrendMonths:
    def test_crosses_year_boundary(self):
        assert trend_months(date(2026, 2, 14), months=4) == ["2025-11", "2025-12", "2026-01", "2026-02"]


class TestEquipmentCosts:
    def test_superseded_records_excluded(self, db, manager):
        unit = create_test_equipment(db)
        original = create_test_record(db, unit, performed_at=days_ago(10), total_cost="300")
        create_test_record(
            db, unit, performed_at=days_ago(9), total_cost="250", corrects_record_id=original.id
        )

        stats = equipment_costs(db, manager.company_id, unit.id)
        assert stats.record_count == 1
        assert stats.total == Decimal("250")

    def test_record_carries_its_work_order_spend(self, db, manager):
        unit = create_test_equipment(db)
        order = create_test_work_order(db, unit, status="closed", actual_cost=Decimal("400"))
        create_test_record(db, unit, work_order=order, labor_cost="150", parts_cost="200")
        create_test_receipt(db, unit, total_amount="90.00")

        stats = equipment_costs(db, manager.company_id, unit.id)
        assert stats.by_category.work_orders == Decimal("0")
        assert stats.total == Decimal("440")
        assert stats.work_order_actual_total == Decimal("400")

    def test_other_tenant_not_found(self, db, outsider):
        unit = create_test_equipment(db)
        with pytest.raises(NotFoundError):
            equipment_costs(db, outsider.company_id, unit.id)
