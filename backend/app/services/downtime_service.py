"""
Downtime & Availability Service

Opens and closes downtime events and derives availability statistics from
them. compute_availability() is a pure fold over events so it can be used
on rows from any query.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.security import CallerIdentity
from app.exceptions import (
    AlreadyClosedError,
    ConcurrentModificationError,
    NotFoundError,
    ValidationError,
)
from app.logging_config import get_logger
from app.models.downtime import DowntimeEvent
from app.models.equipment import EquipmentUnit
from app.models.work_order import WorkOrder
from app.schemas.downtime import AvailabilityStats, DowntimeEnd, DowntimeReason, DowntimeStart

logger = get_logger(__name__)

_TWO_PLACES = Decimal("0.01")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; convert aware input to match."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _hours(seconds: float) -> Decimal:
    return (Decimal(str(seconds)) / Decimal("3600")).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def _get_equipment(db: Session, company_id: int, equipment_id: int) -> EquipmentUnit:
    equipment = db.query(EquipmentUnit).filter(
        EquipmentUnit.id == equipment_id,
        EquipmentUnit.company_id == company_id,
    ).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    return equipment


def get_downtime_event(db: Session, company_id: int, event_id: int) -> DowntimeEvent:
    event = db.query(DowntimeEvent).filter(
        DowntimeEvent.id == event_id,
        DowntimeEvent.company_id == company_id,
    ).first()
    if not event:
        raise NotFoundError("Downtime event", event_id)
    return event


# ============================================================================
# Recording
# ============================================================================

def start_downtime(
    db: Session,
    company_id: int,
    data: DowntimeStart,
    actor: CallerIdentity,
    now: Optional[datetime] = None,
) -> DowntimeEvent:
    """Open a downtime event and take the equipment out of service."""
    equipment = _get_equipment(db, company_id, data.equipment_id)
    if equipment.status == "retired":
        raise ValidationError("Cannot record downtime for retired equipment", field="equipment_id")

    if data.work_order_id is not None:
        order = db.query(WorkOrder).filter(
            WorkOrder.id == data.work_order_id,
            WorkOrder.company_id == company_id,
        ).first()
        if not order:
            raise NotFoundError("Work order", data.work_order_id)
        if order.equipment_id != equipment.id:
            raise ValidationError(
                "Work order belongs to a different equipment unit",
                field="work_order_id",
                value=data.work_order_id,
            )

    started_at = _naive_utc(data.started_at) or _naive_utc(now) or datetime.utcnow()
    event = DowntimeEvent(
        company_id=company_id,
        equipment_id=equipment.id,
        work_order_id=data.work_order_id,
        started_at=started_at,
        reason=data.reason.value,
        reason_details=data.reason_details,
        reported_by=actor.user_id,
    )
    db.add(event)
    equipment.status = "out_of_service"
    db.commit()
    db.refresh(event)

    logger.info(
        f"Downtime started for {equipment.equipment_code}",
        extra={
            "company_id": company_id,
            "downtime_id": event.id,
            "equipment_id": equipment.id,
            "reason": event.reason,
            "user_id": actor.user_id,
        },
    )
    return event


def end_downtime(
    db: Session,
    company_id: int,
    event_id: int,
    actor: CallerIdentity,
    data: Optional[DowntimeEnd] = None,
    now: Optional[datetime] = None,
) -> DowntimeEvent:
    """
    Close a downtime event and compute its duration.

    The close is a conditional UPDATE on ended_at IS NULL, so two requests
    racing to close the same event cannot both succeed. The equipment goes
    back to active once no open events remain.

    Raises:
        AlreadyClosedError: the event already has an end timestamp
        ValidationError: end precedes start
        ConcurrentModificationError: another request closed it first
    """
    event = get_downtime_event(db, company_id, event_id)
    if event.ended_at is not None:
        logger.warning(
            f"Rejected second close of downtime event {event.id}",
            extra={"downtime_id": event.id, "user_id": actor.user_id},
        )
        raise AlreadyClosedError("Downtime event", event.id)

    ended_at = None
    if data is not None and data.ended_at is not None:
        ended_at = _naive_utc(data.ended_at)
    ended_at = ended_at or _naive_utc(now) or datetime.utcnow()
    if ended_at < event.started_at:
        raise ValidationError(
            "Downtime cannot end before it started",
            field="ended_at",
            value=ended_at.isoformat(),
        )

    duration_minutes = int((ended_at - event.started_at).total_seconds() // 60)
    values = {
        "ended_at": ended_at,
        "duration_minutes": duration_minutes,
        "resolved_by": actor.user_id,
        "updated_at": datetime.utcnow(),
    }
    if data is not None and data.resolution_notes:
        values["resolution_notes"] = data.resolution_notes

    updated = db.query(DowntimeEvent).filter(
        DowntimeEvent.id == event.id,
        DowntimeEvent.company_id == company_id,
        DowntimeEvent.ended_at.is_(None),
    ).update(values, synchronize_session=False)
    if updated == 0:
        db.rollback()
        logger.warning(
            f"Downtime event {event.id} was closed by another request",
            extra={"downtime_id": event.id, "user_id": actor.user_id},
        )
        raise ConcurrentModificationError(
            "Downtime event", event.id, expected_state="open", actual_state="closed"
        )

    still_open = db.query(DowntimeEvent.id).filter(
        DowntimeEvent.company_id == company_id,
        DowntimeEvent.equipment_id == event.equipment_id,
        DowntimeEvent.ended_at.is_(None),
        DowntimeEvent.id != event.id,
    ).count()
    if still_open == 0:
        equipment = _get_equipment(db, company_id, event.equipment_id)
        if equipment.status == "out_of_service":
            equipment.status = "active"

    db.commit()
    db.refresh(event)

    logger.info(
        f"Downtime {event.id} ended after {duration_minutes} minutes",
        extra={
            "company_id": company_id,
            "downtime_id": event.id,
            "equipment_id": event.equipment_id,
            "duration_minutes": duration_minutes,
            "user_id": actor.user_id,
        },
    )
    return event


def list_downtime(
    db: Session,
    company_id: int,
    equipment_id: Optional[int] = None,
    include_open: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[DowntimeEvent], int]:
    """Newest-first downtime events. Returns (page, total)."""
    query = db.query(DowntimeEvent).filter(DowntimeEvent.company_id == company_id)
    if equipment_id is not None:
        query = query.filter(DowntimeEvent.equipment_id == equipment_id)
    if not include_open:
        query = query.filter(DowntimeEvent.ended_at.isnot(None))

    total = query.count()
    events = (
        query.order_by(DowntimeEvent.started_at.desc(), DowntimeEvent.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return events, total


# ============================================================================
# Availability
# ============================================================================

def compute_availability(
    events: Iterable,
    window_start: datetime,
    window_end: datetime,
    now: Optional[datetime] = None,
) -> AvailabilityStats:
    """
    Availability over [window_start, window_end].

    Each event is clipped to the window. Open events run until window_end or
    now, whichever is earlier. Overlapping intervals are merged so no second
    of downtime is counted twice; availability therefore never rises when
    downtime is added.

    MTBF is window hours / max(1, breakdown events overlapping the window).
    MTTR averages the full duration of closed events overlapping the window.
    """
    window_start = _naive_utc(window_start)
    window_end = _naive_utc(window_end)
    if window_end <= window_start:
        raise ValidationError("Availability window must end after it starts", field="window_end")
    now = _naive_utc(now) or datetime.utcnow()
    open_until = min(window_end, now)

    intervals = []
    event_count = 0
    breakdown_count = 0
    repair_seconds = []

    for event in events:
        started_at = _naive_utc(event.started_at)
        ended_at = _naive_utc(event.ended_at)
        if started_at >= window_end or (ended_at is not None and ended_at <= window_start):
            continue
        event_count += 1
        if event.reason == DowntimeReason.BREAKDOWN.value:
            breakdown_count += 1
        if ended_at is not None:
            repair_seconds.append((ended_at - started_at).total_seconds())

        clipped_start = max(started_at, window_start)
        clipped_end = min(ended_at if ended_at is not None else open_until, window_end)
        if clipped_end > clipped_start:
            intervals.append((clipped_start, clipped_end))

    downtime_seconds = 0.0
    merged_end = None
    for start, end in sorted(intervals):
        if merged_end is not None and start < merged_end:
            if end > merged_end:
                downtime_seconds += (end - merged_end).total_seconds()
                merged_end = end
            continue
        downtime_seconds += (end - start).total_seconds()
        merged_end = end

    window_seconds = (window_end - window_start).total_seconds()
    availability = (
        Decimal("100") * (Decimal("1") - Decimal(str(downtime_seconds)) / Decimal(str(window_seconds)))
    ).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    window_hours = _hours(window_seconds)

    return AvailabilityStats(
        window_start=window_start,
        window_end=window_end,
        window_hours=window_hours,
        downtime_hours=_hours(downtime_seconds),
        availability_percent=availability,
        event_count=event_count,
        breakdown_count=breakdown_count,
        mtbf_hours=(window_hours / Decimal(max(1, breakdown_count))).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP),
        mttr_hours=_hours(sum(repair_seconds) / len(repair_seconds)) if repair_seconds else None,
    )


def events_in_window(
    db: Session,
    company_id: int,
    equipment_id: int,
    window_start: datetime,
    window_end: datetime,
) -> List[DowntimeEvent]:
    """Events for one unit that overlap the window, open ones included."""
    return db.query(DowntimeEvent).filter(
        DowntimeEvent.company_id == company_id,
        DowntimeEvent.equipment_id == equipment_id,
        DowntimeEvent.started_at < _naive_utc(window_end),
        or_(DowntimeEvent.ended_at.is_(None), DowntimeEvent.ended_at > _naive_utc(window_start)),
    ).all()


def equipment_availability(
    db: Session,
    company_id: int,
    equipment_id: int,
    window_start: datetime,
    window_end: datetime,
    now: Optional[datetime] = None,
) -> AvailabilityStats:
    """Availability for one equipment unit in the caller's tenant."""
    _get_equipment(db, company_id, equipment_id)
    if _naive_utc(window_end) <= _naive_utc(window_start):
        raise ValidationError("Availability window must end after it starts", field="window_end")
    events = events_in_window(db, company_id, equipment_id, window_start, window_end)
    return compute_availability(events, window_start, window_end, now)
