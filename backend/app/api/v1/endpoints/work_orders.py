"""
Work Order API Endpoints

Maintenance work orders and their lifecycle:
requested -> approved -> scheduled -> in_progress -> completed -> closed,
with cancellation from any non-terminal state.
"""
from datetime import date
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_identity, get_pagination_params
from app.core.security import CallerIdentity
from app.core.status_config import WorkOrderPriority, WorkOrderStatus
from app.db.session import get_db
from app.logging_config import get_logger
from app.schemas.common import PaginationMeta, PaginationParams
from app.schemas.work_order import (
    WorkOrderCreate,
    WorkOrderDetail,
    WorkOrderFilters,
    WorkOrderListResponse,
    WorkOrderNoteCreate,
    WorkOrderNoteResponse,
    WorkOrderResponse,
    WorkOrderTransition,
    WorkOrderUpdate,
)
from app.services import work_order_service

router = APIRouter()
logger = get_logger(__name__)


def _order_to_detail(order) -> WorkOrderDetail:
    detail = WorkOrderDetail.model_validate(order)
    detail.allowed_transitions = work_order_service.allowed_transitions(order)
    return detail


@router.get("/", response_model=WorkOrderListResponse)
async def list_work_orders(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    equipment_id: Optional[int] = None,
    status: Optional[List[WorkOrderStatus]] = Query(None),
    priority: Optional[List[WorkOrderPriority]] = Query(None),
    assigned_to: Optional[str] = None,
    due_before: Optional[date] = None,
    safety_concern: Optional[bool] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """
    List work orders

    Safety concerns first, then by priority, then by due date.
    """
    filters = WorkOrderFilters(
        equipment_id=equipment_id,
        statuses=status,
        priorities=priority,
        assigned_to=assigned_to,
        due_before=due_before,
        safety_concern=safety_concern,
    )
    orders, total = work_order_service.list_work_orders(
        db, identity.company_id, filters, limit=pagination.limit, offset=pagination.offset
    )
    return WorkOrderListResponse(
        items=[WorkOrderResponse.model_validate(order) for order in orders],
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(orders),
        ),
    )


@router.post("/", response_model=WorkOrderDetail, status_code=201)
async def create_work_order(
    data: WorkOrderCreate,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    order = work_order_service.create_work_order(db, identity.company_id, data, identity)
    return _order_to_detail(order)


@router.get("/{order_id}", response_model=WorkOrderDetail)
async def get_work_order(
    order_id: int,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """Work order with notes and the transitions currently allowed"""
    order = work_order_service.get_work_order(db, identity.company_id, order_id)
    return _order_to_detail(order)


@router.patch("/{order_id}", response_model=WorkOrderDetail)
async def update_work_order(
    order_id: int,
    data: WorkOrderUpdate,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    order = work_order_service.update_work_order(db, identity.company_id, order_id, data, identity)
    return _order_to_detail(order)


@router.post("/{order_id}/transition", response_model=WorkOrderDetail)
async def transition_work_order(
    order_id: int,
    data: WorkOrderTransition,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """
    Move a work order to a new status

    Pass **expected_status** to fail with 409 if the order has moved since
    the caller last read it.
    """
    order = work_order_service.transition_work_order(
        db,
        identity.company_id,
        order_id,
        data.target_status,
        identity,
        expected_status=data.expected_status,
        scheduled_date=data.scheduled_date,
        actual_labor_hours=data.actual_labor_hours,
        actual_cost=data.actual_cost,
        resolution_notes=data.resolution_notes,
    )
    return _order_to_detail(order)


@router.post("/{order_id}/notes", response_model=WorkOrderNoteResponse, status_code=201)
async def add_note(
    order_id: int,
    data: WorkOrderNoteCreate,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    note = work_order_service.add_work_order_note(db, identity.company_id, order_id, data.body, identity)
    return WorkOrderNoteResponse.model_validate(note)
