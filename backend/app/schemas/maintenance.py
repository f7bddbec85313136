"""
Maintenance Pydantic Schemas

Schemas for maintenance schedules, their evaluated status, maintenance
records and receipts.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from enum import Enum
from decimal import Decimal

from app.schemas.common import PaginationMeta


# ============================================================================
# Enums
# ============================================================================

class ScheduleType(str, Enum):
    """Kinds of recurring maintenance"""
    PREVENTIVE = "preventive"
    INSPECTION = "inspection"
    CERTIFICATION = "certification"
    OTHER = "other"


class FrequencyUnit(str, Enum):
    """Calendar trigger units"""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


class ScheduleStatus(str, Enum):
    """Evaluated schedule status, least to most urgent"""
    OK = "ok"
    WARNING = "warning"
    OVERDUE = "overdue"


class RecordType(str, Enum):
    """Types of completed maintenance work (also used by work orders)"""
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"
    INSPECTION_DAILY = "inspection_daily"
    INSPECTION_WEEKLY = "inspection_weekly"
    INSPECTION_MONTHLY = "inspection_monthly"
    INSPECTION_ANNUAL = "inspection_annual"
    LOAD_TEST = "load_test"
    SERVICE_REPORT = "service_report"
    PARTS_REPLACEMENT = "parts_replacement"
    CALIBRATION = "calibration"
    CERTIFICATION_RENEWAL = "certification_renewal"
    OTHER = "other"


class ReceiptSource(str, Enum):
    """How a receipt entered the system"""
    MOBILE_PHOTO = "mobile_photo"
    PDF_UPLOAD = "pdf_upload"
    EMAIL_FORWARD = "email_forward"
    MANUAL_ENTRY = "manual_entry"
    VENDOR_PORTAL = "vendor_portal"


# ============================================================================
# Schedule Schemas
# ============================================================================

class ScheduleCreate(BaseModel):
    """Create a maintenance schedule. At least one trigger is required."""
    equipment_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    maintenance_type: ScheduleType = Field(..., description="preventive, inspection, certification, other")

    frequency_value: Optional[int] = Field(None, ge=1, description="Calendar interval count")
    frequency_unit: Optional[FrequencyUnit] = Field(None, description="Calendar interval unit")
    hours_interval: Optional[Decimal] = Field(None, gt=0, description="Usage-hours interval")

    warning_days: Optional[int] = Field(None, ge=0)
    warning_hours: Optional[Decimal] = Field(None, ge=0)

    task_checklist: List[str] = Field(default_factory=list)
    required_parts: List[str] = Field(default_factory=list)
    required_certifications: List[str] = Field(default_factory=list)

    assigned_to: Optional[str] = Field(None, max_length=100)
    is_regulatory_requirement: bool = False
    regulation_reference: Optional[str] = Field(None, max_length=255)

    last_completed_at: Optional[date] = Field(
        None, description="Seed the baseline when the schedule replaces a paper one"
    )


class ScheduleUpdate(BaseModel):
    """Update frequency, warning lead time, assignment or active flag"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    frequency_value: Optional[int] = Field(None, ge=1)
    frequency_unit: Optional[FrequencyUnit] = None
    hours_interval: Optional[Decimal] = Field(None, gt=0)
    warning_days: Optional[int] = Field(None, ge=0)
    warning_hours: Optional[Decimal] = Field(None, ge=0)
    task_checklist: Optional[List[str]] = None
    assigned_to: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    is_regulatory_requirement: Optional[bool] = None
    regulation_reference: Optional[str] = Field(None, max_length=255)


class ScheduleEvaluation(BaseModel):
    """Due status of one schedule at a point in time"""
    status: ScheduleStatus
    next_due_at: Optional[date] = Field(None, description="Earliest projected due date")
    next_due_hours: Optional[Decimal] = None
    hours_remaining: Optional[Decimal] = Field(None, description="Negative when past due")
    days_until_due: Optional[int] = Field(None, description="Negative when past due")


class ScheduleResponse(BaseModel):
    """Schedule with its evaluated status"""
    id: int
    equipment_id: int
    name: str
    description: Optional[str] = None
    maintenance_type: ScheduleType
    frequency_value: Optional[int] = None
    frequency_unit: Optional[FrequencyUnit] = None
    hours_interval: Optional[Decimal] = None
    warning_days: Optional[int] = None
    warning_hours: Optional[Decimal] = None
    task_checklist: List[str] = Field(default_factory=list)
    required_parts: List[str] = Field(default_factory=list)
    required_certifications: List[str] = Field(default_factory=list)
    assigned_to: Optional[str] = None
    is_active: bool
    is_regulatory_requirement: bool
    regulation_reference: Optional[str] = None
    last_completed_at: Optional[date] = None
    last_completed_hours: Optional[Decimal] = None
    created_at: datetime
    evaluation: Optional[ScheduleEvaluation] = None

    class Config:
        from_attributes = True


class ScheduleFilters(BaseModel):
    """Closed filter set for schedule listing"""
    equipment_id: Optional[int] = None
    maintenance_types: Optional[List[ScheduleType]] = None
    is_active: Optional[bool] = True
    overdue_only: bool = False
    due_within_days: Optional[int] = Field(None, ge=0)
    as_of: Optional[date] = None

    class Config:
        extra = "forbid"


class ScheduleListResponse(BaseModel):
    """Urgency-ordered page of schedules"""
    items: List[ScheduleResponse]
    pagination: PaginationMeta


# ============================================================================
# Maintenance Record Schemas
# ============================================================================

class MaintenanceRecordCreate(BaseModel):
    """Record completed maintenance work. Records are immutable once created."""
    equipment_id: int
    work_order_id: Optional[int] = None
    schedule_id: Optional[int] = None
    corrects_record_id: Optional[int] = Field(None, description="Record this one supersedes")

    record_type: RecordType
    title: str = Field(..., min_length=1, max_length=255)
    performed_at: date
    performed_by: Optional[str] = Field(None, max_length=100)
    hour_meter_reading: Optional[Decimal] = Field(None, ge=0)

    work_performed: Optional[str] = None
    findings: Optional[str] = None
    passed: Optional[bool] = None

    is_certification_record: bool = False
    certification_type: Optional[str] = Field(None, max_length=100)
    certification_expiry: Optional[date] = None

    labor_cost: Optional[Decimal] = Field(None, ge=0)
    parts_cost: Optional[Decimal] = Field(None, ge=0)
    total_cost: Optional[Decimal] = Field(None, ge=0)


class MaintenanceRecordResponse(BaseModel):
    """Maintenance record"""
    id: int
    equipment_id: int
    work_order_id: Optional[int] = None
    schedule_id: Optional[int] = None
    corrects_record_id: Optional[int] = None
    record_type: str
    title: str
    performed_at: date
    performed_by: Optional[str] = None
    hour_meter_reading: Optional[Decimal] = None
    work_performed: Optional[str] = None
    findings: Optional[str] = None
    passed: Optional[bool] = None
    is_certification_record: bool
    certification_type: Optional[str] = None
    certification_expiry: Optional[date] = None
    labor_cost: Optional[Decimal] = None
    parts_cost: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MaintenanceRecordFilters(BaseModel):
    """Closed filter set for record listing"""
    equipment_id: Optional[int] = None
    record_types: Optional[List[RecordType]] = None
    performed_after: Optional[date] = None
    performed_before: Optional[date] = None
    certification_only: bool = False

    class Config:
        extra = "forbid"


class MaintenanceRecordListResponse(BaseModel):
    """Newest-first page of records"""
    items: List[MaintenanceRecordResponse]
    pagination: PaginationMeta


# ============================================================================
# Receipt Schemas
# ============================================================================

class ReceiptCreate(BaseModel):
    """
    Attach a receipt. equipment_id may be omitted when the receipt is linked
    to a record or work order; it is then taken from the link.
    """
    equipment_id: Optional[int] = None
    maintenance_record_id: Optional[int] = None
    work_order_id: Optional[int] = None
    source: ReceiptSource = ReceiptSource.MANUAL_ENTRY
    receipt_number: Optional[str] = Field(None, max_length=100)
    receipt_date: date
    vendor_name: Optional[str] = Field(None, max_length=255)
    total_amount: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    expense_category: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class ReceiptResponse(BaseModel):
    """Maintenance receipt"""
    id: int
    equipment_id: int
    maintenance_record_id: Optional[int] = None
    work_order_id: Optional[int] = None
    source: str
    receipt_number: Optional[str] = None
    receipt_date: date
    vendor_name: Optional[str] = None
    total_amount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    expense_category: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ReceiptListResponse(BaseModel):
    """Newest-first page of receipts"""
    items: List[ReceiptResponse]
    pagination: PaginationMeta
