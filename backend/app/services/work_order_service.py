"""
Work Order Lifecycle Service

Creates maintenance work orders and moves them through the status graph in
app.core.status_config.

Every status write is a conditional UPDATE guarded by the status and
version the caller validated against. If another request moved the order
first, zero rows match and ConcurrentModificationError is raised instead of
overwriting the newer state.
"""
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.orm import Session

from app.core.security import CallerIdentity
from app.core.status_config import (
    PRIORITY_RANK,
    TERMINAL_WORK_ORDER_STATUSES,
    WorkOrderStatus,
    get_allowed_work_order_transitions,
    validate_work_order_transition,
)
from app.exceptions import (
    AlreadyClosedError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.logging_config import get_logger
from app.models.equipment import EquipmentUnit
from app.models.maintenance import MaintenanceRecord, MaintenanceSchedule
from app.models.work_order import WorkOrder, WorkOrderNote
from app.schemas.work_order import (
    WorkOrderCreate,
    WorkOrderFilters,
    WorkOrderRequest,
    WorkOrderUpdate,
)

logger = get_logger(__name__)

# Columns an update may change but never clear
REQUIRED_ORDER_FIELDS = ("title", "priority", "safety_concern")


# ============================================================================
# Lookups
# ============================================================================

def get_work_order(db: Session, company_id: int, order_id: int) -> WorkOrder:
    order = db.query(WorkOrder).filter(
        WorkOrder.id == order_id,
        WorkOrder.company_id == company_id,
    ).first()
    if not order:
        raise NotFoundError("Work order", order_id)
    return order


def allowed_transitions(order: WorkOrder) -> List[str]:
    return get_allowed_work_order_transitions(order.status, order.approval_required)


def _next_work_order_number(db: Session, company_id: int, today: date) -> str:
    """Generate the next WO-YY-NNNN number for the tenant."""
    prefix = f"WO-{today.strftime('%y')}-"
    last = (
        db.query(WorkOrder.work_order_number)
        .filter(
            WorkOrder.company_id == company_id,
            WorkOrder.work_order_number.like(f"{prefix}%"),
        )
        .order_by(WorkOrder.work_order_number.desc())
        .first()
    )
    if last:
        try:
            seq = int(last[0].split("-")[-1]) + 1
        except ValueError:
            seq = 1
    else:
        seq = 1
    return f"{prefix}{seq:04d}"


# ============================================================================
# Create / update
# ============================================================================

def create_work_order(
    db: Session,
    company_id: int,
    data: WorkOrderCreate,
    actor: CallerIdentity,
    commit: bool = True,
) -> WorkOrder:
    """
    Create a work order. Every order starts in 'requested'; orders that need
    approval cannot be scheduled until approved.
    """
    if not data.title or not data.title.strip():
        raise ValidationError("Work order title is required", field="title")

    equipment = db.query(EquipmentUnit).filter(
        EquipmentUnit.id == data.equipment_id,
        EquipmentUnit.company_id == company_id,
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", data.equipment_id)

    if data.schedule_id is not None:
        schedule = db.query(MaintenanceSchedule).filter(
            MaintenanceSchedule.id == data.schedule_id,
            MaintenanceSchedule.company_id == company_id,
        ).first()
        if not schedule:
            raise NotFoundError("Maintenance schedule", data.schedule_id)
        if schedule.equipment_id != equipment.id:
            raise ValidationError(
                "Schedule belongs to a different equipment unit",
                field="schedule_id",
                value=data.schedule_id,
            )

    today = date.today()
    order = WorkOrder(
        company_id=company_id,
        work_order_number=_next_work_order_number(db, company_id, today),
        equipment_id=equipment.id,
        schedule_id=data.schedule_id,
        title=data.title.strip(),
        description=data.description,
        maintenance_type=data.maintenance_type.value,
        status=WorkOrderStatus.REQUESTED.value,
        priority=data.priority.value,
        safety_concern=data.safety_concern,
        requested_date=today,
        scheduled_date=data.scheduled_date,
        due_date=data.due_date,
        requested_by=actor.user_id,
        assigned_to=data.assigned_to,
        estimated_labor_hours=data.estimated_labor_hours,
        estimated_cost=data.estimated_cost,
        approval_required=data.approval_required,
        approved=False,
        problem_description=data.problem_description,
        version=1,
    )
    db.add(order)
    db.flush()

    logger.info(
        f"Work order {order.work_order_number} requested",
        extra={
            "company_id": company_id,
            "work_order_id": order.id,
            "equipment_id": equipment.id,
            "schedule_id": data.schedule_id,
            "priority": order.priority,
            "user_id": actor.user_id,
        },
    )
    if commit:
        db.commit()
        db.refresh(order)
    return order


def create_from_request(
    db: Session,
    company_id: int,
    request: WorkOrderRequest,
    actor: CallerIdentity,
    commit: bool = True,
) -> WorkOrder:
    """Realize a WorkOrderRequest emitted by the schedule engine."""
    return create_work_order(
        db,
        company_id,
        WorkOrderCreate(
            equipment_id=request.equipment_id,
            schedule_id=request.schedule_id,
            title=request.title,
            description=request.description,
            maintenance_type=request.maintenance_type,
            priority=request.priority,
            due_date=request.due_date,
            assigned_to=request.assigned_to,
        ),
        actor,
        commit=commit,
    )


def _ensure_mutable(order: WorkOrder) -> None:
    if order.status in TERMINAL_WORK_ORDER_STATUSES:
        logger.warning(
            f"Rejected change to {order.status} work order {order.work_order_number}",
            extra={"work_order_id": order.id, "status": order.status},
        )
        raise AlreadyClosedError("Work order", order.id)


def update_work_order(
    db: Session,
    company_id: int,
    order_id: int,
    data: WorkOrderUpdate,
    actor: CallerIdentity,
) -> WorkOrder:
    """Update assignment, dates, estimates and actuals of an open order."""
    order = get_work_order(db, company_id, order_id)
    _ensure_mutable(order)

    changes = data.model_dump(exclude_unset=True)
    for field in REQUIRED_ORDER_FIELDS:
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be null", field=field)
    if "title" in changes and not changes["title"].strip():
        raise ValidationError("Work order title is required", field="title")

    for field, value in changes.items():
        if hasattr(value, "value"):
            value = value.value
        setattr(order, field, value)
    order.version = order.version + 1
    db.commit()
    db.refresh(order)

    logger.info(
        f"Work order {order.work_order_number} updated",
        extra={"work_order_id": order.id, "fields": sorted(changes), "user_id": actor.user_id},
    )
    return order


def add_work_order_note(
    db: Session,
    company_id: int,
    order_id: int,
    body: str,
    actor: CallerIdentity,
) -> WorkOrderNote:
    """Append a note. The only change a closed order accepts."""
    order = get_work_order(db, company_id, order_id)
    if not body or not body.strip():
        raise ValidationError("Note body is required", field="body")

    note = WorkOrderNote(
        company_id=company_id,
        work_order_id=order.id,
        body=body.strip(),
        author=actor.user_id,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


# ============================================================================
# Transitions
# ============================================================================

def transition_work_order(
    db: Session,
    company_id: int,
    order_id: int,
    target_status,
    actor: CallerIdentity,
    expected_status=None,
    scheduled_date: Optional[date] = None,
    actual_labor_hours=None,
    actual_cost=None,
    resolution_notes: Optional[str] = None,
) -> WorkOrder:
    """
    Move a work order to target_status.

    Raises:
        InvalidTransitionError: edge not in the lifecycle graph
        AlreadyClosedError: closing an order that is already closed
        ValidationError: completing without labor hours or a linked record
        ConcurrentModificationError: the order moved since it was read, or
            does not match expected_status
    """
    order = get_work_order(db, company_id, order_id)
    current = order.status
    target = WorkOrderStatus(target_status).value

    if expected_status is not None:
        expected = WorkOrderStatus(expected_status).value
        if expected != current:
            logger.warning(
                f"Work order {order.work_order_number} is {current}, caller expected {expected}",
                extra={"work_order_id": order.id, "user_id": actor.user_id},
            )
            raise ConcurrentModificationError(
                "Work order", order.id, expected_state=expected, actual_state=current
            )

    try:
        validate_work_order_transition(current, target, order.approval_required)
    except (InvalidTransitionError, AlreadyClosedError):
        logger.warning(
            f"Rejected work order transition {current} -> {target}",
            extra={"work_order_id": order.id, "user_id": actor.user_id},
        )
        raise

    now = datetime.utcnow()
    values = {
        "status": target,
        "version": order.version + 1,
        "updated_at": now,
    }

    if target == WorkOrderStatus.APPROVED.value:
        values.update(approved=True, approved_by=actor.user_id, approved_at=now)
    elif target == WorkOrderStatus.SCHEDULED.value:
        values["scheduled_date"] = scheduled_date or order.scheduled_date or now.date()
    elif target == WorkOrderStatus.IN_PROGRESS.value:
        values["started_at"] = now
    elif target == WorkOrderStatus.COMPLETED.value:
        labor = actual_labor_hours if actual_labor_hours is not None else order.actual_labor_hours
        if labor is None:
            has_record = db.query(MaintenanceRecord.id).filter(
                MaintenanceRecord.company_id == company_id,
                MaintenanceRecord.work_order_id == order.id,
            ).first() is not None
            if not has_record:
                logger.warning(
                    f"Rejected completion of {order.work_order_number}: no labor hours or record",
                    extra={"work_order_id": order.id, "user_id": actor.user_id},
                )
                raise ValidationError(
                    "Completing a work order requires actual labor hours or a linked maintenance record",
                    field="actual_labor_hours",
                )
        values["completed_at"] = now
        if actual_labor_hours is not None:
            values["actual_labor_hours"] = actual_labor_hours
        if actual_cost is not None:
            values["actual_cost"] = actual_cost
    elif target == WorkOrderStatus.CLOSED.value:
        values["closed_at"] = now
    elif target == WorkOrderStatus.CANCELLED.value:
        values["cancelled_at"] = now

    if resolution_notes:
        values["resolution_notes"] = resolution_notes

    updated = db.query(WorkOrder).filter(
        WorkOrder.id == order.id,
        WorkOrder.company_id == company_id,
        WorkOrder.status == current,
        WorkOrder.version == order.version,
    ).update(values, synchronize_session=False)

    if updated == 0:
        db.rollback()
        actual = db.query(WorkOrder.status).filter(
            WorkOrder.id == order.id,
            WorkOrder.company_id == company_id,
        ).scalar()
        logger.warning(
            f"Concurrent modification of work order {order.id} during {current} -> {target}",
            extra={"work_order_id": order.id, "user_id": actor.user_id},
        )
        raise ConcurrentModificationError(
            "Work order", order.id, expected_state=current, actual_state=actual
        )

    db.commit()
    db.refresh(order)

    logger.info(
        f"Work order {order.work_order_number}: {current} -> {target}",
        extra={
            "company_id": company_id,
            "work_order_id": order.id,
            "from_status": current,
            "to_status": target,
            "user_id": actor.user_id,
        },
    )
    return order


# ============================================================================
# Listing
# ============================================================================

def list_work_orders(
    db: Session,
    company_id: int,
    filters: Optional[WorkOrderFilters] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[WorkOrder], int]:
    """
    List work orders: safety concerns first, then priority
    (emergency > high > medium > low), then earliest due date.
    Returns (page, total).
    """
    filters = filters or WorkOrderFilters()
    query = db.query(WorkOrder).filter(WorkOrder.company_id == company_id)

    if filters.equipment_id is not None:
        query = query.filter(WorkOrder.equipment_id == filters.equipment_id)
    if filters.statuses:
        query = query.filter(WorkOrder.status.in_([s.value for s in filters.statuses]))
    if filters.priorities:
        query = query.filter(WorkOrder.priority.in_([p.value for p in filters.priorities]))
    if filters.assigned_to:
        query = query.filter(WorkOrder.assigned_to == filters.assigned_to)
    if filters.due_before is not None:
        query = query.filter(WorkOrder.due_date < filters.due_before)
    if filters.safety_concern is not None:
        query = query.filter(WorkOrder.safety_concern.is_(filters.safety_concern))

    total = query.count()

    priority_rank = case(PRIORITY_RANK, value=WorkOrder.priority, else_=len(PRIORITY_RANK))
    orders = (
        query.order_by(
            WorkOrder.safety_concern.desc(),
            priority_rank,
            WorkOrder.due_date.is_(None),
            WorkOrder.due_date.asc(),
            WorkOrder.id.asc(),
        )
        .offset(offset)
        .limit(limit)
        .all()
    )
    return orders, total
