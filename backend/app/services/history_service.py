"""
Equipment history: records, receipts, work orders, downtime and schedules
merged into one newest-first timeline.
"""
from datetime import datetime, time

from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models.downtime import DowntimeEvent
from app.models.equipment import EquipmentUnit
from app.models.maintenance import MaintenanceReceipt, MaintenanceRecord, MaintenanceSchedule
from app.models.work_order import WorkOrder
from app.schemas.equipment import EquipmentHistory, TimelineEntry


def _at_midnight(day) -> datetime:
    return datetime.combine(day, time.min)


def equipment_history(db: Session, company_id: int, equipment_id: int) -> EquipmentHistory:
    equipment = db.query(EquipmentUnit).filter(
        EquipmentUnit.id == equipment_id,
        EquipmentUnit.company_id == company_id,
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)

    def scoped(model):
        return db.query(model).filter(
            model.company_id == company_id,
            model.equipment_id == equipment_id,
        )

    entries = []
    corrected = set()
    records = scoped(MaintenanceRecord).all()
    for record in records:
        if record.corrects_record_id is not None:
            corrected.add(record.corrects_record_id)

    for record in records:
        entries.append(TimelineEntry(
            occurred_at=_at_midnight(record.performed_at),
            kind="record",
            id=record.id,
            title=record.title,
            status="superseded" if record.id in corrected else None,
            detail=record.record_type,
            cost=record.total_cost,
        ))

    for receipt in scoped(MaintenanceReceipt).all():
        entries.append(TimelineEntry(
            occurred_at=_at_midnight(receipt.receipt_date),
            kind="receipt",
            id=receipt.id,
            title=f"Receipt from {receipt.vendor_name}" if receipt.vendor_name else "Receipt",
            detail=receipt.receipt_number,
            cost=receipt.total_amount,
        ))

    for order in scoped(WorkOrder).all():
        entries.append(TimelineEntry(
            occurred_at=order.created_at,
            kind="work_order",
            id=order.id,
            title=f"{order.work_order_number}: {order.title}",
            status=order.status,
            detail=order.maintenance_type,
            cost=order.actual_cost,
        ))

    for event in scoped(DowntimeEvent).all():
        entries.append(TimelineEntry(
            occurred_at=event.started_at,
            kind="downtime",
            id=event.id,
            title=f"Downtime: {event.reason}",
            status="open" if event.ended_at is None else "closed",
            detail=event.reason_details,
        ))

    for schedule in scoped(MaintenanceSchedule).all():
        entries.append(TimelineEntry(
            occurred_at=schedule.created_at,
            kind="schedule",
            id=schedule.id,
            title=schedule.name,
            status="active" if schedule.is_active else "inactive",
            detail=schedule.maintenance_type,
        ))

    entries.sort(key=lambda entry: (entry.occurred_at, entry.kind, entry.id), reverse=True)
    return EquipmentHistory(
        equipment_id=equipment.id,
        equipment_code=equipment.equipment_code,
        entries=entries,
    )
