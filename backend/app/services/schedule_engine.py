"""
Schedule Engine

Computes due/overdue status for recurring maintenance schedules under a
calendar trigger, a usage-hours trigger, or both, and owns schedule
definitions.

evaluate() is pure: it reads a schedule and a point in time and returns a
ScheduleEvaluation. When a schedule first goes overdue the engine does not
create anything itself; work_order_request_for() returns a WorkOrderRequest
that the work order service may realize.
"""
import calendar
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, contains_eager, joinedload

from app.core.security import CallerIdentity
from app.core.settings import get_settings
from app.core.status_config import WorkOrderPriority
from app.exceptions import NotFoundError, ValidationError
from app.logging_config import get_logger
from app.models.equipment import EquipmentUnit
from app.models.maintenance import MaintenanceSchedule
from app.schemas.maintenance import (
    FrequencyUnit,
    ScheduleCreate,
    ScheduleEvaluation,
    ScheduleFilters,
    ScheduleStatus,
    ScheduleUpdate,
)
from app.schemas.work_order import OverdueSweepResponse, WorkOrderRequest

logger = get_logger(__name__)

# Columns that are NOT NULL in storage; an update may change them but not clear them
REQUIRED_SCHEDULE_FIELDS = ("name", "is_active", "is_regulatory_requirement")

URGENCY = {
    ScheduleStatus.OK: 0,
    ScheduleStatus.WARNING: 1,
    ScheduleStatus.OVERDUE: 2,
}

# Shortest span one unit of each calendar interval can cover
_UNIT_MIN_DAYS = {
    FrequencyUnit.DAYS.value: 1,
    FrequencyUnit.WEEKS.value: 7,
    FrequencyUnit.MONTHS.value: 28,
    FrequencyUnit.YEARS.value: 365,
}


# ============================================================================
# Calendar helpers
# ============================================================================

def _add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_interval(start: date, value: int, unit: str) -> date:
    """Advance a date by frequency_value frequency_unit."""
    unit = FrequencyUnit(unit).value
    if unit == FrequencyUnit.DAYS.value:
        return start + timedelta(days=value)
    if unit == FrequencyUnit.WEEKS.value:
        return start + timedelta(weeks=value)
    if unit == FrequencyUnit.MONTHS.value:
        return _add_months(start, value)
    return _add_months(start, value * 12)


def interval_min_days(value: int, unit: str) -> int:
    """Fewest days the interval can span (February for months, 365 for years)."""
    return value * _UNIT_MIN_DAYS[FrequencyUnit(unit).value]


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


def validate_schedule_triggers(
    frequency_value: Optional[int],
    frequency_unit: Optional[str],
    hours_interval,
    warning_days: Optional[int] = None,
    warning_hours=None,
) -> None:
    """
    Enforce the trigger invariants.

    Raises:
        ValidationError: no trigger, half a calendar trigger, or a warning
            lead time not strictly less than its interval
    """
    frequency_unit = _enum_value(frequency_unit)
    hours_interval = _to_decimal(hours_interval)
    warning_hours = _to_decimal(warning_hours)

    if (frequency_value is None) != (frequency_unit is None):
        raise ValidationError(
            "Calendar trigger needs both frequency_value and frequency_unit",
            field="frequency_value" if frequency_value is None else "frequency_unit",
        )
    has_calendar = frequency_value is not None
    has_usage = hours_interval is not None

    if not has_calendar and not has_usage:
        raise ValidationError(
            "At least one frequency trigger (calendar or usage hours) is required",
            field="frequency_value",
        )
    if has_calendar and frequency_value < 1:
        raise ValidationError("frequency_value must be at least 1", field="frequency_value", value=frequency_value)
    if has_usage and hours_interval <= 0:
        raise ValidationError("hours_interval must be positive", field="hours_interval", value=hours_interval)

    if warning_days is not None:
        if not has_calendar:
            raise ValidationError("warning_days requires a calendar trigger", field="warning_days")
        limit = interval_min_days(frequency_value, frequency_unit)
        if warning_days >= limit:
            raise ValidationError(
                f"warning_days must be less than the interval ({limit} days)",
                field="warning_days",
                value=warning_days,
            )

    if warning_hours is not None:
        if not has_usage:
            raise ValidationError("warning_hours requires a usage-hours trigger", field="warning_hours")
        if warning_hours >= hours_interval:
            raise ValidationError(
                f"warning_hours must be less than the interval ({hours_interval} hours)",
                field="warning_hours",
                value=warning_hours,
            )


# ============================================================================
# Evaluation
# ============================================================================

def _baseline_date(schedule: MaintenanceSchedule) -> date:
    if schedule.last_completed_at is not None:
        return schedule.last_completed_at
    return schedule.created_at.date()


def _evaluate_calendar(schedule: MaintenanceSchedule, as_of: date) -> Optional[Tuple[ScheduleStatus, date]]:
    if not schedule.has_calendar_trigger:
        return None
    next_due = add_interval(_baseline_date(schedule), schedule.frequency_value, schedule.frequency_unit)
    if as_of > next_due:
        return ScheduleStatus.OVERDUE, next_due
    if schedule.warning_days is not None and (next_due - as_of).days <= schedule.warning_days:
        return ScheduleStatus.WARNING, next_due
    return ScheduleStatus.OK, next_due


def _evaluate_usage(
    schedule: MaintenanceSchedule,
    as_of: date,
    current: Decimal,
) -> Tuple[ScheduleStatus, Decimal, Decimal, Optional[date]]:
    baseline = _to_decimal(schedule.last_completed_hours) or Decimal("0")
    next_due_hours = baseline + _to_decimal(schedule.hours_interval)
    remaining = next_due_hours - current

    if current > next_due_hours:
        status = ScheduleStatus.OVERDUE
    elif schedule.warning_hours is not None and remaining <= _to_decimal(schedule.warning_hours):
        status = ScheduleStatus.WARNING
    else:
        status = ScheduleStatus.OK

    # Project a date from the average daily usage since the baseline
    projected = None
    elapsed_days = (as_of - _baseline_date(schedule)).days
    used = current - baseline
    if elapsed_days > 0 and used > 0:
        daily_rate = used / Decimal(elapsed_days)
        projected = as_of + timedelta(days=math.ceil(remaining / daily_rate))

    return status, next_due_hours, remaining, projected


def evaluate(
    schedule: MaintenanceSchedule,
    as_of: date,
    current_usage_hours=None,
) -> ScheduleEvaluation:
    """
    Evaluate a schedule at as_of.

    The calendar trigger is due at (last completion or creation date) +
    interval. The usage trigger is due at last completed hours +
    hours_interval and is skipped when no reading is supplied. With both
    configured, the more urgent status wins and next_due_at is the earlier
    projected date.
    """
    if isinstance(as_of, datetime):
        as_of = as_of.date()

    status = ScheduleStatus.OK
    due_dates: List[date] = []
    next_due_hours = None
    hours_remaining = None

    calendar_result = _evaluate_calendar(schedule, as_of)
    if calendar_result is not None:
        status, next_due = calendar_result
        due_dates.append(next_due)

    if schedule.has_usage_trigger:
        baseline = _to_decimal(schedule.last_completed_hours) or Decimal("0")
        next_due_hours = baseline + _to_decimal(schedule.hours_interval)
        current = _to_decimal(current_usage_hours)
        if current is not None:
            usage_status, next_due_hours, hours_remaining, projected = _evaluate_usage(schedule, as_of, current)
            if URGENCY[usage_status] > URGENCY[status]:
                status = usage_status
            if projected is not None:
                due_dates.append(projected)

    next_due_at = min(due_dates) if due_dates else None
    return ScheduleEvaluation(
        status=status,
        next_due_at=next_due_at,
        next_due_hours=next_due_hours,
        hours_remaining=hours_remaining,
        days_until_due=(next_due_at - as_of).days if next_due_at else None,
    )


def urgency_sort_key(schedule: MaintenanceSchedule, evaluation: ScheduleEvaluation):
    """Overdue first, then warning, then ok; soonest due first within each."""
    return (
        -URGENCY[evaluation.status],
        evaluation.next_due_at or date.max,
        schedule.id or 0,
    )


# ============================================================================
# Overdue work order requests
# ============================================================================

_INSPECTION_TYPE_BY_UNIT = {
    FrequencyUnit.DAYS.value: "inspection_daily",
    FrequencyUnit.WEEKS.value: "inspection_weekly",
    FrequencyUnit.MONTHS.value: "inspection_monthly",
    FrequencyUnit.YEARS.value: "inspection_annual",
}


def work_order_type_for(schedule: MaintenanceSchedule) -> str:
    """Record type a work order raised from this schedule should carry."""
    if schedule.maintenance_type == "preventive":
        return "preventive"
    if schedule.maintenance_type == "certification":
        return "certification_renewal"
    if schedule.maintenance_type == "inspection":
        return _INSPECTION_TYPE_BY_UNIT.get(schedule.frequency_unit, "inspection_monthly")
    return "other"


def work_order_request_for(
    schedule: MaintenanceSchedule,
    evaluation: ScheduleEvaluation,
) -> Optional[WorkOrderRequest]:
    """
    Return a WorkOrderRequest when the schedule is overdue for the first time
    since its last completion, otherwise None.
    """
    if not schedule.is_active or evaluation.status != ScheduleStatus.OVERDUE:
        return None
    if schedule.overdue_flagged_at is not None:
        return None

    description = f"Overdue maintenance schedule '{schedule.name}'"
    if evaluation.next_due_at:
        description += f" (due {evaluation.next_due_at.isoformat()})"
    if schedule.regulation_reference:
        description += f". Regulation: {schedule.regulation_reference}"

    return WorkOrderRequest(
        schedule_id=schedule.id,
        equipment_id=schedule.equipment_id,
        title=f"{schedule.name} - overdue",
        maintenance_type=work_order_type_for(schedule),
        priority=WorkOrderPriority.HIGH if schedule.is_regulatory_requirement else WorkOrderPriority.MEDIUM,
        due_date=evaluation.next_due_at,
        description=description,
        assigned_to=schedule.assigned_to,
    )


# ============================================================================
# Schedule store operations
# ============================================================================

def get_schedule(db: Session, company_id: int, schedule_id: int) -> MaintenanceSchedule:
    schedule = (
        db.query(MaintenanceSchedule)
        .options(joinedload(MaintenanceSchedule.equipment))
        .filter(
            MaintenanceSchedule.id == schedule_id,
            MaintenanceSchedule.company_id == company_id,
        )
        .first()
    )
    if not schedule:
        raise NotFoundError("Maintenance schedule", schedule_id)
    return schedule


def evaluate_schedule(
    db: Session,
    company_id: int,
    schedule_id: int,
    as_of: Optional[date] = None,
    usage_hours=None,
) -> Tuple[MaintenanceSchedule, ScheduleEvaluation]:
    """Evaluate a stored schedule, defaulting the reading to the equipment's hour meter."""
    schedule = get_schedule(db, company_id, schedule_id)
    if usage_hours is None:
        usage_hours = schedule.equipment.current_usage_hours
    return schedule, evaluate(schedule, as_of or date.today(), usage_hours)


def list_schedules(
    db: Session,
    company_id: int,
    filters: Optional[ScheduleFilters] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Tuple[MaintenanceSchedule, ScheduleEvaluation]], int]:
    """
    List schedules matching the filters, most urgent first.

    Status depends on the evaluation date, so filtering on it and ordering
    happen after evaluation. Returns (page, total).
    """
    filters = filters or ScheduleFilters()
    as_of = filters.as_of or date.today()

    query = (
        db.query(MaintenanceSchedule)
        .options(joinedload(MaintenanceSchedule.equipment))
        .filter(MaintenanceSchedule.company_id == company_id)
    )
    if filters.equipment_id is not None:
        query = query.filter(MaintenanceSchedule.equipment_id == filters.equipment_id)
    if filters.maintenance_types:
        query = query.filter(
            MaintenanceSchedule.maintenance_type.in_([t.value for t in filters.maintenance_types])
        )
    if filters.is_active is not None:
        query = query.filter(MaintenanceSchedule.is_active.is_(filters.is_active))

    evaluated = []
    horizon = as_of + timedelta(days=filters.due_within_days) if filters.due_within_days is not None else None
    for schedule in query.all():
        evaluation = evaluate(schedule, as_of, schedule.equipment.current_usage_hours)
        if filters.overdue_only and evaluation.status != ScheduleStatus.OVERDUE:
            continue
        if horizon is not None and evaluation.status != ScheduleStatus.OVERDUE:
            if evaluation.next_due_at is None or evaluation.next_due_at > horizon:
                continue
        evaluated.append((schedule, evaluation))

    evaluated.sort(key=lambda pair: urgency_sort_key(*pair))
    return evaluated[offset:offset + limit], len(evaluated)


def create_schedule(
    db: Session,
    company_id: int,
    data: ScheduleCreate,
    actor: CallerIdentity,
) -> MaintenanceSchedule:
    """
    Create a schedule for an equipment unit in the caller's tenant.

    When warning_days is omitted on a calendar schedule the configured
    DEFAULT_WARNING_DAYS is applied, but only if it is shorter than the
    interval.
    """
    equipment = db.query(EquipmentUnit).filter(
        EquipmentUnit.id == data.equipment_id,
        EquipmentUnit.company_id == company_id,
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", data.equipment_id)
    if equipment.status == "retired":
        raise ValidationError("Cannot schedule maintenance for retired equipment", field="equipment_id")

    frequency_unit = _enum_value(data.frequency_unit)
    warning_days = data.warning_days
    if warning_days is None and data.frequency_value is not None and frequency_unit is not None:
        default_days = get_settings().DEFAULT_WARNING_DAYS
        if default_days < interval_min_days(data.frequency_value, frequency_unit):
            warning_days = default_days

    validate_schedule_triggers(
        data.frequency_value,
        frequency_unit,
        data.hours_interval,
        warning_days,
        data.warning_hours,
    )

    last_completed_hours = None
    if data.hours_interval is not None:
        last_completed_hours = _to_decimal(equipment.current_usage_hours) or Decimal("0")

    schedule = MaintenanceSchedule(
        company_id=company_id,
        equipment_id=equipment.id,
        name=data.name,
        description=data.description,
        maintenance_type=data.maintenance_type.value,
        frequency_value=data.frequency_value,
        frequency_unit=frequency_unit,
        hours_interval=data.hours_interval,
        warning_days=warning_days,
        warning_hours=data.warning_hours,
        task_checklist=list(data.task_checklist),
        required_parts=list(data.required_parts),
        required_certifications=list(data.required_certifications),
        assigned_to=data.assigned_to,
        is_active=True,
        is_regulatory_requirement=data.is_regulatory_requirement,
        regulation_reference=data.regulation_reference,
        last_completed_at=data.last_completed_at,
        last_completed_hours=last_completed_hours,
        created_by=actor.user_id,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)

    logger.info(
        "Maintenance schedule created",
        extra={
            "company_id": company_id,
            "schedule_id": schedule.id,
            "equipment_id": equipment.id,
            "maintenance_type": schedule.maintenance_type,
            "user_id": actor.user_id,
        },
    )
    return schedule


def update_schedule(
    db: Session,
    company_id: int,
    schedule_id: int,
    data: ScheduleUpdate,
    actor: CallerIdentity,
) -> MaintenanceSchedule:
    """Change frequency, warning lead time, assignment or active flag."""
    schedule = get_schedule(db, company_id, schedule_id)
    changes = {key: _enum_value(value) for key, value in data.model_dump(exclude_unset=True).items()}

    for field in REQUIRED_SCHEDULE_FIELDS:
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be null", field=field)
    if "name" in changes and not changes["name"].strip():
        raise ValidationError("Schedule name cannot be empty", field="name")

    merged = {
        "frequency_value": schedule.frequency_value,
        "frequency_unit": schedule.frequency_unit,
        "hours_interval": schedule.hours_interval,
        "warning_days": schedule.warning_days,
        "warning_hours": schedule.warning_hours,
    }
    merged.update({key: value for key, value in changes.items() if key in merged})
    validate_schedule_triggers(**merged)

    # A usage trigger added later counts from the current reading, as on create
    adds_usage = schedule.hours_interval is None and changes.get("hours_interval") is not None

    for field, value in changes.items():
        setattr(schedule, field, value)
    if adds_usage:
        schedule.last_completed_hours = _to_decimal(schedule.equipment.current_usage_hours) or Decimal("0")
    db.commit()
    db.refresh(schedule)

    logger.info(
        "Maintenance schedule updated",
        extra={
            "company_id": company_id,
            "schedule_id": schedule.id,
            "fields": sorted(changes),
            "user_id": actor.user_id,
        },
    )
    return schedule


def deactivate_schedule(
    db: Session,
    company_id: int,
    schedule_id: int,
    actor: CallerIdentity,
) -> MaintenanceSchedule:
    """Soft-deactivate. Schedules stay referenced by history and are never deleted."""
    schedule = get_schedule(db, company_id, schedule_id)
    if schedule.is_active:
        schedule.is_active = False
        db.commit()
        db.refresh(schedule)
        logger.info(
            "Maintenance schedule deactivated",
            extra={"company_id": company_id, "schedule_id": schedule.id, "user_id": actor.user_id},
        )
    return schedule


def complete_schedule(
    schedule: MaintenanceSchedule,
    completed_on: date,
    usage_hours=None,
) -> MaintenanceSchedule:
    """
    Advance the schedule baseline after qualifying work. A back-dated
    completion never moves the baseline backwards. Clears the overdue flag so
    a later overdue episode raises a new request. The caller commits.
    """
    if schedule.last_completed_at is None or completed_on >= schedule.last_completed_at:
        schedule.last_completed_at = completed_on
    reading = _to_decimal(usage_hours)
    if reading is not None:
        current = _to_decimal(schedule.last_completed_hours)
        if current is None or reading > current:
            schedule.last_completed_hours = reading
    schedule.overdue_flagged_at = None
    return schedule


def sweep_overdue_schedules(
    db: Session,
    company_id: int,
    actor: CallerIdentity,
    as_of: Optional[date] = None,
    auto_create: Optional[bool] = None,
) -> OverdueSweepResponse:
    """
    Evaluate every active schedule in the tenant and collect work order
    requests for newly overdue ones.

    With AUTO_CREATE_WORK_ORDERS (or auto_create=True) the requests are handed
    to the work order service and the schedules are flagged so the same
    overdue episode is not requested twice.
    """
    from app.services.work_order_service import create_from_request

    as_of = as_of or date.today()
    if auto_create is None:
        auto_create = get_settings().AUTO_CREATE_WORK_ORDERS

    schedules = (
        db.query(MaintenanceSchedule)
        .join(EquipmentUnit, MaintenanceSchedule.equipment_id == EquipmentUnit.id)
        .options(contains_eager(MaintenanceSchedule.equipment))
        .filter(
            MaintenanceSchedule.company_id == company_id,
            MaintenanceSchedule.is_active.is_(True),
            EquipmentUnit.status != "retired",
        )
        .order_by(MaintenanceSchedule.id)
        .all()
    )

    result = OverdueSweepResponse(evaluated=len(schedules), overdue=0)
    for schedule in schedules:
        evaluation = evaluate(schedule, as_of, schedule.equipment.current_usage_hours)
        if evaluation.status == ScheduleStatus.OVERDUE:
            result.overdue += 1
        request = work_order_request_for(schedule, evaluation)
        if request is None:
            continue
        result.requests.append(request)
        if auto_create:
            order = create_from_request(db, company_id, request, actor, commit=False)
            schedule.overdue_flagged_at = datetime.utcnow()
            result.created_work_order_ids.append(order.id)

    if auto_create and result.requests:
        db.commit()

    logger.info(
        "Overdue schedule sweep finished",
        extra={
            "company_id": company_id,
            "evaluated": result.evaluated,
            "overdue": result.overdue,
            "requested": len(result.requests),
            "created": len(result.created_work_order_ids),
        },
    )
    return result
