"""
Maintenance Schedule API Endpoints

Schedules with calendar and/or usage-hours triggers, evaluated on read.
Creating or changing a schedule requires a scheduler role.
"""
from datetime import date
from decimal import Decimal
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_identity, get_pagination_params, require_scheduler
from app.core.security import CallerIdentity
from app.db.session import get_db
from app.logging_config import get_logger
from app.schemas.common import PaginationMeta, PaginationParams
from app.schemas.maintenance import (
    ScheduleCreate,
    ScheduleFilters,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleType,
    ScheduleUpdate,
)
from app.schemas.work_order import OverdueSweepResponse
from app.services import schedule_engine

router = APIRouter()
logger = get_logger(__name__)


def _schedule_to_response(schedule, evaluation=None) -> ScheduleResponse:
    response = ScheduleResponse.model_validate(schedule)
    response.evaluation = evaluation
    return response


@router.get("/", response_model=ScheduleListResponse)
async def list_schedules(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    equipment_id: Optional[int] = None,
    maintenance_type: Optional[List[ScheduleType]] = Query(None),
    is_active: Optional[bool] = True,
    overdue_only: bool = False,
    due_within_days: Optional[int] = Query(None, ge=0),
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """
    List schedules, most urgent first

    - **overdue_only**: only schedules past their due point
    - **due_within_days**: overdue schedules plus those due within N days
    - **as_of**: evaluation date (default today)
    """
    filters = ScheduleFilters(
        equipment_id=equipment_id,
        maintenance_types=maintenance_type,
        is_active=is_active,
        overdue_only=overdue_only,
        due_within_days=due_within_days,
        as_of=as_of,
    )
    page, total = schedule_engine.list_schedules(
        db, identity.company_id, filters, limit=pagination.limit, offset=pagination.offset
    )
    return ScheduleListResponse(
        items=[_schedule_to_response(schedule, evaluation) for schedule, evaluation in page],
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(page),
        ),
    )


@router.post("/", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    data: ScheduleCreate,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(require_scheduler),
):
    """Create a maintenance schedule for an equipment unit"""
    schedule = schedule_engine.create_schedule(db, identity.company_id, data, identity)
    _, evaluation = schedule_engine.evaluate_schedule(db, identity.company_id, schedule.id)
    return _schedule_to_response(schedule, evaluation)


@router.post("/overdue-sweep", response_model=OverdueSweepResponse)
async def sweep_overdue(
    as_of: Optional[date] = None,
    auto_create: Optional[bool] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(require_scheduler),
):
    """
    Evaluate every active schedule and report work order requests for newly
    overdue ones. **auto_create** overrides AUTO_CREATE_WORK_ORDERS.
    """
    return schedule_engine.sweep_overdue_schedules(
        db, identity.company_id, identity, as_of=as_of, auto_create=auto_create
    )


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    schedule, evaluation = schedule_engine.evaluate_schedule(db, identity.company_id, schedule_id)
    return _schedule_to_response(schedule, evaluation)


@router.get("/{schedule_id}/evaluate", response_model=ScheduleResponse)
async def evaluate_schedule(
    schedule_id: int,
    as_of: Optional[date] = None,
    usage_hours: Optional[Decimal] = Query(None, ge=0, description="Defaults to the equipment hour meter"),
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """Evaluate a schedule at a given date and usage reading"""
    schedule, evaluation = schedule_engine.evaluate_schedule(
        db, identity.company_id, schedule_id, as_of=as_of, usage_hours=usage_hours
    )
    return _schedule_to_response(schedule, evaluation)


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(require_scheduler),
):
    schedule = schedule_engine.update_schedule(db, identity.company_id, schedule_id, data, identity)
    _, evaluation = schedule_engine.evaluate_schedule(db, identity.company_id, schedule.id)
    return _schedule_to_response(schedule, evaluation)


@router.post("/{schedule_id}/deactivate", response_model=ScheduleResponse)
async def deactivate_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(require_scheduler),
):
    """Stop a schedule from being evaluated or swept"""
    schedule = schedule_engine.deactivate_schedule(db, identity.company_id, schedule_id, identity)
    return _schedule_to_response(schedule)
