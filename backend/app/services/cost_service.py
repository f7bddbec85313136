"""
Cost Aggregator

Rolls up maintenance spend per equipment unit. Read-only: source rows are
never modified. Missing cost fields count as zero.

Categories are disjoint so the total is their sum:
- labor / parts: record labor_cost and parts_cost
- other: record total_cost beyond labor + parts
- external: receipts not tied to a maintenance record
- work_orders: actual_cost of work orders no record accounts for

Cancelled work orders carry no spend.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from app.exceptions import NotFoundError, ValidationError
from app.logging_config import get_logger
from app.models.equipment import EquipmentUnit
from app.models.maintenance import MaintenanceReceipt, MaintenanceRecord
from app.models.work_order import WorkOrder
from app.schemas.equipment import CostBreakdown, CostStats, CostTrendBucket
from app.services.record_service import superseded_record_ids

logger = get_logger(__name__)

ZERO = Decimal("0")
TREND_MONTHS = 12


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def trend_months(period_end: date, months: int = TREND_MONTHS) -> List[str]:
    """Month keys for the trailing buckets, oldest first, ending at period_end's month."""
    keys = []
    year, month = period_end.year, period_end.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def trend_start(period_end: date, months: int = TREND_MONTHS) -> date:
    first = trend_months(period_end, months)[0]
    return date(int(first[:4]), int(first[5:]), 1)


def work_order_cost_date(order) -> date:
    if order.completed_at is not None:
        return order.completed_at.date()
    return order.requested_date


def rollup_costs(
    equipment_id: int,
    records: Iterable,
    receipts: Iterable,
    work_orders: Iterable,
    period_start: date,
    period_end: date,
    recorded_work_order_ids: Optional[Set[int]] = None,
) -> CostStats:
    """
    Fold records, receipts and work orders into a CostStats.

    Totals cover [period_start, period_end]. The monthly trend always covers
    the 12 months ending at period_end. recorded_work_order_ids lists work
    orders whose spend is already carried by a maintenance record; it
    defaults to those referenced by the given records.
    """
    if period_end < period_start:
        raise ValidationError("Cost period must end on or after its start", field="period_end")

    records = list(records)
    receipts = list(receipts)
    work_orders = list(work_orders)
    if recorded_work_order_ids is None:
        recorded_work_order_ids = {r.work_order_id for r in records if r.work_order_id is not None}

    months = trend_months(period_end)
    trend: Dict[str, Decimal] = {key: ZERO for key in months}
    breakdown = CostBreakdown()
    counts = {"record": 0, "receipt": 0, "work_order": 0}
    estimated_total = ZERO
    actual_total = ZERO

    def in_period(day: date) -> bool:
        return period_start <= day <= period_end

    def add_trend(day: date, amount: Decimal) -> None:
        key = _month_key(day)
        if key in trend and day <= period_end:
            trend[key] += amount

    for record in records:
        labor = _money(record.labor_cost)
        parts = _money(record.parts_cost)
        total = _money(record.total_cost) if record.total_cost is not None else labor + parts
        other = max(total - labor - parts, ZERO)
        add_trend(record.performed_at, labor + parts + other)
        if in_period(record.performed_at):
            counts["record"] += 1
            breakdown.labor += labor
            breakdown.parts += parts
            breakdown.other += other

    for receipt in receipts:
        if receipt.maintenance_record_id is not None:
            continue
        amount = _money(receipt.total_amount)
        add_trend(receipt.receipt_date, amount)
        if in_period(receipt.receipt_date):
            counts["receipt"] += 1
            breakdown.external += amount

    for order in work_orders:
        if order.status == "cancelled":
            continue
        cost_date = work_order_cost_date(order)
        unrecorded = order.id not in recorded_work_order_ids
        if unrecorded:
            add_trend(cost_date, _money(order.actual_cost))
        if not in_period(cost_date):
            continue
        counts["work_order"] += 1
        estimated_total += _money(order.estimated_cost)
        actual_total += _money(order.actual_cost)
        if unrecorded:
            breakdown.work_orders += _money(order.actual_cost)

    total = breakdown.labor + breakdown.parts + breakdown.other + breakdown.external + breakdown.work_orders
    return CostStats(
        equipment_id=equipment_id,
        period_start=period_start,
        period_end=period_end,
        total=total,
        by_category=breakdown,
        work_order_estimated_total=estimated_total,
        work_order_actual_total=actual_total,
        record_count=counts["record"],
        receipt_count=counts["receipt"],
        work_order_count=counts["work_order"],
        monthly_trend=[CostTrendBucket(month=key, total=trend[key]) for key in months],
    )


def equipment_costs(
    db: Session,
    company_id: int,
    equipment_id: int,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> CostStats:
    """Cost rollup for one unit. Defaults to the year ending today."""
    equipment = db.query(EquipmentUnit).filter(
        EquipmentUnit.id == equipment_id,
        EquipmentUnit.company_id == company_id,
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)

    period_end = period_end or date.today()
    period_start = period_start or period_end - timedelta(days=365)
    earliest = min(period_start, trend_start(period_end))

    superseded = superseded_record_ids(company_id)
    records = db.query(MaintenanceRecord).filter(
        MaintenanceRecord.company_id == company_id,
        MaintenanceRecord.equipment_id == equipment_id,
        MaintenanceRecord.performed_at >= earliest,
        MaintenanceRecord.performed_at <= period_end,
        MaintenanceRecord.id.notin_(superseded),
    ).all()
    receipts = db.query(MaintenanceReceipt).filter(
        MaintenanceReceipt.company_id == company_id,
        MaintenanceReceipt.equipment_id == equipment_id,
        MaintenanceReceipt.receipt_date >= earliest,
        MaintenanceReceipt.receipt_date <= period_end,
    ).all()
    work_orders = db.query(WorkOrder).filter(
        WorkOrder.company_id == company_id,
        WorkOrder.equipment_id == equipment_id,
    ).all()

    recorded = {
        row[0]
        for row in db.query(MaintenanceRecord.work_order_id).filter(
            MaintenanceRecord.company_id == company_id,
            MaintenanceRecord.equipment_id == equipment_id,
            MaintenanceRecord.work_order_id.isnot(None),
        )
    }

    return rollup_costs(
        equipment_id,
        records,
        receipts,
        work_orders,
        period_start,
        period_end,
        recorded_work_order_ids=recorded,
    )
