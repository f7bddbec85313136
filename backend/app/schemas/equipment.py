"""
Per-equipment aggregate schemas: costs and history timeline
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal


class CostBreakdown(BaseModel):
    """Spend by category. Categories never overlap."""
    labor: Decimal = Decimal("0")
    parts: Decimal = Decimal("0")
    external: Decimal = Field(Decimal("0"), description="Receipts not tied to a maintenance record")
    work_orders: Decimal = Field(Decimal("0"), description="Work order actuals without a maintenance record")
    other: Decimal = Field(Decimal("0"), description="Record cost beyond labor and parts")


class CostTrendBucket(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    total: Decimal


class CostStats(BaseModel):
    """Cost rollup for one equipment unit over a reporting window"""
    equipment_id: int
    period_start: date
    period_end: date
    total: Decimal
    by_category: CostBreakdown
    work_order_estimated_total: Decimal
    work_order_actual_total: Decimal
    record_count: int
    receipt_count: int
    work_order_count: int
    monthly_trend: List[CostTrendBucket] = Field(..., description="12 buckets ending at period_end")


class TimelineEntry(BaseModel):
    """One item in an equipment's merged history"""
    occurred_at: datetime
    kind: str = Field(..., description="record, receipt, work_order, downtime, schedule")
    id: int
    title: str
    status: Optional[str] = None
    detail: Optional[str] = None
    cost: Optional[Decimal] = None


class EquipmentHistory(BaseModel):
    equipment_id: int
    equipment_code: str
    entries: List[TimelineEntry]
