"""
Test data factories for CorTrack.

Provides functions to create test entities with sensible defaults. Rows are
inserted directly so tests can back-date them; service behavior is tested
through the services themselves.

Usage:
    from tests.factories import create_test_equipment, create_test_schedule

    def test_something(db_session):
        crane = create_test_equipment(db_session, equipment_code="CRANE-01")
        schedule = create_test_schedule(db_session, equipment=crane, frequency_value=90)
"""
from datetime import datetime, date, timedelta
from decimal import Decimal
from typing import Dict, Optional
from sqlalchemy.orm import Session

COMPANY_ID = 1


# =============================================================================
# SEQUENCE MANAGEMENT
# =============================================================================

_sequences: Dict[str, int] = {}


def reset_sequences():
    """Reset all sequences. Call between tests for predictable codes."""
    global _sequences
    _sequences = {}


def _next(name: str) -> int:
    """Get next sequence number for a given entity type."""
    _sequences[name] = _sequences.get(name, 0) + 1
    return _sequences[name]


# =============================================================================
# EQUIPMENT FACTORY
# =============================================================================

def create_test_equipment(
    db: Session,
    company_id: int = COMPANY_ID,
    equipment_code: Optional[str] = None,
    equipment_type: str = "forklift",
    status: str = "active",
    current_usage_hours=None,
    **overrides
) -> "EquipmentUnit":
    """Create an equipment unit."""
    from app.models.equipment import EquipmentUnit

    seq = _next("equipment")
    unit = EquipmentUnit(
        company_id=company_id,
        equipment_code=equipment_code or f"EQ-{seq:03d}",
        name=overrides.pop("name", f"Test Equipment {seq}"),
        equipment_type=equipment_type,
        status=status,
        current_usage_hours=current_usage_hours,
        **overrides
    )
    db.add(unit)
    db.commit()
    db.refresh(unit)
    return unit


# =============================================================================
# SCHEDULE FACTORY
# =============================================================================

def create_test_schedule(
    db: Session,
    equipment: "EquipmentUnit",
    maintenance_type: str = "preventive",
    frequency_value: Optional[int] = 90,
    frequency_unit: Optional[str] = "days",
    hours_interval=None,
    warning_days: Optional[int] = 7,
    warning_hours=None,
    last_completed_at: Optional[date] = None,
    last_completed_hours=None,
    is_regulatory_requirement: bool = False,
    created_at: Optional[datetime] = None,
    **overrides
) -> "MaintenanceSchedule":
    """
    Create a maintenance schedule.

    Defaults to a 90-day calendar trigger with a 7-day warning. Pass
    frequency_value=None and frequency_unit=None for usage-only schedules.
    """
    from app.models.maintenance import MaintenanceSchedule

    seq = _next("schedule")
    schedule = MaintenanceSchedule(
        company_id=equipment.company_id,
        equipment_id=equipment.id,
        name=overrides.pop("name", f"Schedule {seq}"),
        maintenance_type=maintenance_type,
        frequency_value=frequency_value,
        frequency_unit=frequency_unit,
        hours_interval=hours_interval,
        warning_days=warning_days if frequency_value is not None else None,
        warning_hours=warning_hours,
        last_completed_at=last_completed_at,
        last_completed_hours=last_completed_hours,
        is_active=overrides.pop("is_active", True),
        is_regulatory_requirement=is_regulatory_requirement,
        created_at=created_at or datetime.utcnow(),
        **overrides
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


# =============================================================================
# WORK ORDER FACTORY
# =============================================================================

def create_test_work_order(
    db: Session,
    equipment: "EquipmentUnit",
    status: str = "requested",
    maintenance_type: str = "corrective",
    priority: str = "medium",
    schedule: Optional["MaintenanceSchedule"] = None,
    completed_at: Optional[datetime] = None,
    **overrides
) -> "WorkOrder":
    """
    Create a work order in any status.

    Finished orders (completed/closed) get completed_at = now unless given.
    """
    from app.models.work_order import WorkOrder

    seq = _next("work_order")
    if completed_at is None and status in ("completed", "closed"):
        completed_at = datetime.utcnow()
    order = WorkOrder(
        company_id=equipment.company_id,
        work_order_number=overrides.pop("work_order_number", f"WO-TEST-{seq:04d}"),
        equipment_id=equipment.id,
        schedule_id=schedule.id if schedule else None,
        title=overrides.pop("title", f"Work Order {seq}"),
        maintenance_type=maintenance_type,
        status=status,
        priority=priority,
        requested_date=overrides.pop("requested_date", date.today()),
        completed_at=completed_at,
        version=overrides.pop("version", 1),
        **overrides
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


# =============================================================================
# RECORD / RECEIPT FACTORIES
# =============================================================================

def create_test_record(
    db: Session,
    equipment: "EquipmentUnit",
    record_type: str = "preventive",
    performed_at: Optional[date] = None,
    schedule: Optional["MaintenanceSchedule"] = None,
    work_order: Optional["WorkOrder"] = None,
    is_certification_record: bool = False,
    labor_cost=None,
    parts_cost=None,
    total_cost=None,
    **overrides
) -> "MaintenanceRecord":
    """Create a maintenance record (performed today unless given)."""
    from app.models.maintenance import MaintenanceRecord

    seq = _next("record")
    record = MaintenanceRecord(
        company_id=equipment.company_id,
        equipment_id=equipment.id,
        schedule_id=schedule.id if schedule else None,
        work_order_id=work_order.id if work_order else None,
        record_type=record_type,
        title=overrides.pop("title", f"Record {seq}"),
        performed_at=performed_at or date.today(),
        is_certification_record=is_certification_record,
        labor_cost=Decimal(str(labor_cost)) if labor_cost is not None else None,
        parts_cost=Decimal(str(parts_cost)) if parts_cost is not None else None,
        total_cost=Decimal(str(total_cost)) if total_cost is not None else None,
        **overrides
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def create_test_receipt(
    db: Session,
    equipment: "EquipmentUnit",
    total_amount="100.00",
    receipt_date: Optional[date] = None,
    record: Optional["MaintenanceRecord"] = None,
    **overrides
) -> "MaintenanceReceipt":
    """Create a receipt (dated today unless given)."""
    from app.models.maintenance import MaintenanceReceipt

    seq = _next("receipt")
    receipt = MaintenanceReceipt(
        company_id=equipment.company_id,
        equipment_id=equipment.id,
        maintenance_record_id=record.id if record else None,
        source=overrides.pop("source", "manual_entry"),
        receipt_number=overrides.pop("receipt_number", f"RCPT-{seq:04d}"),
        receipt_date=receipt_date or date.today(),
        vendor_name=overrides.pop("vendor_name", "Acme Lift Service"),
        total_amount=Decimal(str(total_amount)) if total_amount is not None else None,
        **overrides
    )
    db.add(receipt)
    db.commit()
    db.refresh(receipt)
    return receipt


# =============================================================================
# DOWNTIME FACTORY
# =============================================================================

def create_test_downtime(
    db: Session,
    equipment: "EquipmentUnit",
    started_at: datetime,
    ended_at: Optional[datetime] = None,
    reason: str = "breakdown",
    **overrides
) -> "DowntimeEvent":
    """Create a downtime event; leave ended_at None for an open event."""
    from app.models.downtime import DowntimeEvent

    event = DowntimeEvent(
        company_id=equipment.company_id,
        equipment_id=equipment.id,
        started_at=started_at,
        ended_at=ended_at,
        duration_minutes=int((ended_at - started_at).total_seconds() // 60) if ended_at else None,
        reason=reason,
        **overrides
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def days_ago(days: int) -> date:
    return date.today() - timedelta(days=days)


def days_ahead(days: int) -> date:
    return date.today() + timedelta(days=days)
