"""
Downtime and availability schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum
from decimal import Decimal

from app.schemas.common import PaginationMeta


class DowntimeReason(str, Enum):
    """Why equipment went down"""
    BREAKDOWN = "breakdown"
    SCHEDULED_MAINTENANCE = "scheduled_maintenance"
    INSPECTION = "inspection"
    OTHER = "other"


class DowntimeStart(BaseModel):
    """Open a downtime event"""
    equipment_id: int
    reason: DowntimeReason
    reason_details: Optional[str] = None
    work_order_id: Optional[int] = None
    started_at: Optional[datetime] = Field(None, description="Defaults to now")


class DowntimeEnd(BaseModel):
    """Close a downtime event"""
    ended_at: Optional[datetime] = Field(None, description="Defaults to now")
    resolution_notes: Optional[str] = None


class DowntimeResponse(BaseModel):
    id: int
    equipment_id: int
    work_order_id: Optional[int] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    reason: DowntimeReason
    reason_details: Optional[str] = None
    resolution_notes: Optional[str] = None
    reported_by: Optional[str] = None
    resolved_by: Optional[str] = None

    class Config:
        from_attributes = True


class DowntimeListResponse(BaseModel):
    """Newest-first page of downtime events"""
    items: List[DowntimeResponse]
    pagination: PaginationMeta


class AvailabilityStats(BaseModel):
    """Availability of one equipment unit over a reporting window"""
    window_start: datetime
    window_end: datetime
    window_hours: Decimal
    downtime_hours: Decimal
    availability_percent: Decimal = Field(..., description="0-100")
    event_count: int = Field(..., description="Events overlapping the window")
    breakdown_count: int
    mtbf_hours: Decimal = Field(..., description="Window hours / max(1, breakdowns)")
    mttr_hours: Optional[Decimal] = Field(None, description="Mean repair time of closed events in the window")
