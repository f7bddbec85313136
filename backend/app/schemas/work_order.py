"""
Work Order Pydantic Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

from app.core.status_config import WorkOrderStatus, WorkOrderPriority
from app.schemas.common import PaginationMeta
from app.schemas.maintenance import RecordType


class WorkOrderCreate(BaseModel):
    """Create a work order. Orders always start in 'requested'."""
    equipment_id: int
    schedule_id: Optional[int] = None
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    maintenance_type: RecordType
    priority: WorkOrderPriority = WorkOrderPriority.MEDIUM
    safety_concern: bool = False
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = Field(None, max_length=100)
    estimated_labor_hours: Optional[Decimal] = Field(None, ge=0)
    estimated_cost: Optional[Decimal] = Field(None, ge=0)
    approval_required: bool = False
    problem_description: Optional[str] = None


class WorkOrderUpdate(BaseModel):
    """Update assignment, dates, estimates and actuals. Status changes go through transitions."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[WorkOrderPriority] = None
    safety_concern: Optional[bool] = None
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = Field(None, max_length=100)
    estimated_labor_hours: Optional[Decimal] = Field(None, ge=0)
    actual_labor_hours: Optional[Decimal] = Field(None, ge=0)
    estimated_cost: Optional[Decimal] = Field(None, ge=0)
    actual_cost: Optional[Decimal] = Field(None, ge=0)
    problem_description: Optional[str] = None
    resolution_notes: Optional[str] = None


class WorkOrderTransition(BaseModel):
    """
    Move a work order to a new status.

    expected_status lets a client assert the status it last saw; a mismatch
    is reported as a concurrent modification.
    """
    target_status: WorkOrderStatus
    expected_status: Optional[WorkOrderStatus] = None
    scheduled_date: Optional[date] = None
    actual_labor_hours: Optional[Decimal] = Field(None, ge=0)
    actual_cost: Optional[Decimal] = Field(None, ge=0)
    resolution_notes: Optional[str] = None


class WorkOrderNoteCreate(BaseModel):
    """Append a note. Allowed on closed orders."""
    body: str = Field(..., min_length=1)


class WorkOrderNoteResponse(BaseModel):
    id: int
    work_order_id: int
    body: str
    author: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class WorkOrderResponse(BaseModel):
    """Work order"""
    id: int
    work_order_number: str
    equipment_id: int
    schedule_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    maintenance_type: str
    status: WorkOrderStatus
    priority: WorkOrderPriority
    safety_concern: bool
    requested_date: date
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    requested_by: Optional[str] = None
    assigned_to: Optional[str] = None
    estimated_labor_hours: Optional[Decimal] = None
    actual_labor_hours: Optional[Decimal] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    approval_required: bool
    approved: bool
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    problem_description: Optional[str] = None
    resolution_notes: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class WorkOrderDetail(WorkOrderResponse):
    """Work order with notes and the statuses it may move to next"""
    notes: List[WorkOrderNoteResponse] = Field(default_factory=list)
    allowed_transitions: List[str] = Field(default_factory=list)


class WorkOrderFilters(BaseModel):
    """Closed filter set for work order listing"""
    equipment_id: Optional[int] = None
    statuses: Optional[List[WorkOrderStatus]] = None
    priorities: Optional[List[WorkOrderPriority]] = None
    assigned_to: Optional[str] = None
    due_before: Optional[date] = None
    safety_concern: Optional[bool] = None

    class Config:
        extra = "forbid"


class WorkOrderListResponse(BaseModel):
    """Page of work orders, safety concerns and urgent priorities first"""
    items: List[WorkOrderResponse]
    pagination: PaginationMeta


class WorkOrderRequest(BaseModel):
    """
    Intent to create a work order, emitted by the schedule engine when a
    schedule first becomes overdue. Realized by the work order service.
    """
    schedule_id: int
    equipment_id: int
    title: str
    maintenance_type: RecordType
    priority: WorkOrderPriority = WorkOrderPriority.HIGH
    due_date: Optional[date] = None
    description: Optional[str] = None
    assigned_to: Optional[str] = None


class OverdueSweepResponse(BaseModel):
    """Outcome of evaluating every active schedule for a tenant"""
    evaluated: int
    overdue: int
    requests: List[WorkOrderRequest] = Field(
        default_factory=list,
        description="Schedules newly overdue since their last completion",
    )
    created_work_order_ids: List[int] = Field(default_factory=list)
