"""
Maintenance Record and Receipt Service

Records are immutable once written; a correction is a new record that
points at the one it supersedes. Writing a record advances the originating
schedule's baseline and the equipment hour meter.
"""
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from app.core.security import CallerIdentity
from app.exceptions import NotFoundError, ValidationError
from app.logging_config import get_logger
from app.models.equipment import EquipmentUnit
from app.models.maintenance import MaintenanceReceipt, MaintenanceRecord, MaintenanceSchedule
from app.models.work_order import WorkOrder
from app.schemas.maintenance import MaintenanceRecordCreate, MaintenanceRecordFilters, ReceiptCreate
from app.services.schedule_engine import complete_schedule

logger = get_logger(__name__)


def superseded_record_ids(company_id: int):
    """SELECT of record ids replaced by a later correction."""
    correction = aliased(MaintenanceRecord)
    return select(correction.corrects_record_id).where(
        correction.company_id == company_id,
        correction.corrects_record_id.isnot(None),
    )


def _get_equipment(db: Session, company_id: int, equipment_id: int) -> EquipmentUnit:
    equipment = db.query(EquipmentUnit).filter(
        EquipmentUnit.id == equipment_id,
        EquipmentUnit.company_id == company_id,
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    return equipment


def _get_work_order(db: Session, company_id: int, order_id: int) -> WorkOrder:
    order = db.query(WorkOrder).filter(
        WorkOrder.id == order_id,
        WorkOrder.company_id == company_id,
    ).first()
    if not order:
        raise NotFoundError("Work order", order_id)
    return order


def get_maintenance_record(db: Session, company_id: int, record_id: int) -> MaintenanceRecord:
    record = db.query(MaintenanceRecord).filter(
        MaintenanceRecord.id == record_id,
        MaintenanceRecord.company_id == company_id,
    ).first()
    if not record:
        raise NotFoundError("Maintenance record", record_id)
    return record


def _same_equipment(linked_equipment_id: int, equipment_id: int, field: str, value) -> None:
    if linked_equipment_id != equipment_id:
        raise ValidationError(
            f"{field} belongs to a different equipment unit",
            field=field,
            value=value,
        )


# ============================================================================
# Records
# ============================================================================

def create_maintenance_record(
    db: Session,
    company_id: int,
    data: MaintenanceRecordCreate,
    actor: CallerIdentity,
) -> MaintenanceRecord:
    """
    Write a maintenance record.

    total_cost defaults to labor + parts when not given. The linked schedule
    (explicit, or the work order's) is marked complete as of performed_at, and
    a higher hour meter reading is copied onto the equipment.
    """
    equipment = _get_equipment(db, company_id, data.equipment_id)

    schedule_id = data.schedule_id
    if data.work_order_id is not None:
        order = _get_work_order(db, company_id, data.work_order_id)
        _same_equipment(order.equipment_id, equipment.id, "work_order_id", data.work_order_id)
        if schedule_id is None:
            schedule_id = order.schedule_id

    schedule = None
    if schedule_id is not None:
        schedule = db.query(MaintenanceSchedule).filter(
            MaintenanceSchedule.id == schedule_id,
            MaintenanceSchedule.company_id == company_id,
        ).first()
        if not schedule:
            raise NotFoundError("Maintenance schedule", schedule_id)
        _same_equipment(schedule.equipment_id, equipment.id, "schedule_id", schedule_id)

    if data.corrects_record_id is not None:
        original = get_maintenance_record(db, company_id, data.corrects_record_id)
        _same_equipment(original.equipment_id, equipment.id, "corrects_record_id", data.corrects_record_id)

    total_cost = data.total_cost
    if total_cost is None and (data.labor_cost is not None or data.parts_cost is not None):
        total_cost = (data.labor_cost or Decimal("0")) + (data.parts_cost or Decimal("0"))

    record = MaintenanceRecord(
        company_id=company_id,
        equipment_id=equipment.id,
        work_order_id=data.work_order_id,
        schedule_id=schedule_id,
        corrects_record_id=data.corrects_record_id,
        record_type=data.record_type.value,
        title=data.title,
        performed_at=data.performed_at,
        performed_by=data.performed_by or actor.user_id,
        hour_meter_reading=data.hour_meter_reading,
        work_performed=data.work_performed,
        findings=data.findings,
        passed=data.passed,
        is_certification_record=data.is_certification_record,
        certification_type=data.certification_type,
        certification_expiry=data.certification_expiry,
        labor_cost=data.labor_cost,
        parts_cost=data.parts_cost,
        total_cost=total_cost,
        created_by=actor.user_id,
    )
    db.add(record)

    if schedule is not None:
        complete_schedule(schedule, data.performed_at, data.hour_meter_reading)

    reading = data.hour_meter_reading
    if reading is not None and (equipment.current_usage_hours is None or reading > equipment.current_usage_hours):
        equipment.current_usage_hours = reading

    db.commit()
    db.refresh(record)

    logger.info(
        "Maintenance record created",
        extra={
            "company_id": company_id,
            "record_id": record.id,
            "equipment_id": equipment.id,
            "record_type": record.record_type,
            "schedule_id": schedule_id,
            "work_order_id": data.work_order_id,
            "user_id": actor.user_id,
        },
    )
    return record


def list_maintenance_records(
    db: Session,
    company_id: int,
    filters: Optional[MaintenanceRecordFilters] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[MaintenanceRecord], int]:
    """Newest-first records. Returns (page, total)."""
    filters = filters or MaintenanceRecordFilters()
    query = db.query(MaintenanceRecord).filter(MaintenanceRecord.company_id == company_id)

    if filters.equipment_id is not None:
        query = query.filter(MaintenanceRecord.equipment_id == filters.equipment_id)
    if filters.record_types:
        query = query.filter(MaintenanceRecord.record_type.in_([t.value for t in filters.record_types]))
    if filters.performed_after is not None:
        query = query.filter(MaintenanceRecord.performed_at >= filters.performed_after)
    if filters.performed_before is not None:
        query = query.filter(MaintenanceRecord.performed_at <= filters.performed_before)
    if filters.certification_only:
        query = query.filter(MaintenanceRecord.is_certification_record.is_(True))

    total = query.count()
    records = (
        query.order_by(MaintenanceRecord.performed_at.desc(), MaintenanceRecord.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return records, total


# ============================================================================
# Receipts
# ============================================================================

def create_receipt(
    db: Session,
    company_id: int,
    data: ReceiptCreate,
    actor: CallerIdentity,
) -> MaintenanceReceipt:
    """
    Attach a receipt. The equipment comes from the linked record or work
    order when not given, and must agree with them when it is.
    """
    linked_equipment_id = None
    if data.maintenance_record_id is not None:
        record = get_maintenance_record(db, company_id, data.maintenance_record_id)
        linked_equipment_id = record.equipment_id
    if data.work_order_id is not None:
        order = _get_work_order(db, company_id, data.work_order_id)
        if linked_equipment_id is not None:
            _same_equipment(order.equipment_id, linked_equipment_id, "work_order_id", data.work_order_id)
        linked_equipment_id = order.equipment_id

    equipment_id = data.equipment_id if data.equipment_id is not None else linked_equipment_id
    if equipment_id is None:
        raise ValidationError(
            "A receipt needs an equipment unit, maintenance record or work order",
            field="equipment_id",
        )
    if linked_equipment_id is not None:
        _same_equipment(linked_equipment_id, equipment_id, "equipment_id", equipment_id)
    equipment = _get_equipment(db, company_id, equipment_id)

    receipt = MaintenanceReceipt(
        company_id=company_id,
        equipment_id=equipment.id,
        maintenance_record_id=data.maintenance_record_id,
        work_order_id=data.work_order_id,
        source=data.source.value,
        receipt_number=data.receipt_number,
        receipt_date=data.receipt_date,
        vendor_name=data.vendor_name,
        total_amount=data.total_amount,
        tax_amount=data.tax_amount,
        expense_category=data.expense_category,
        notes=data.notes,
        created_by=actor.user_id,
    )
    db.add(receipt)
    db.commit()
    db.refresh(receipt)

    logger.info(
        "Maintenance receipt created",
        extra={
            "company_id": company_id,
            "receipt_id": receipt.id,
            "equipment_id": equipment.id,
            "user_id": actor.user_id,
        },
    )
    return receipt


def list_receipts(
    db: Session,
    company_id: int,
    equipment_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[MaintenanceReceipt], int]:
    """Newest-first receipts. Returns (page, total)."""
    query = db.query(MaintenanceReceipt).filter(MaintenanceReceipt.company_id == company_id)
    if equipment_id is not None:
        query = query.filter(MaintenanceReceipt.equipment_id == equipment_id)

    total = query.count()
    receipts = (
        query.order_by(MaintenanceReceipt.receipt_date.desc(), MaintenanceReceipt.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return receipts, total
