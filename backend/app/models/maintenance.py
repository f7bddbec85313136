"""
Maintenance Models

Schedules (recurring maintenance rules), records (completed work) and
receipts (cost documentation) for equipment units.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Date, Numeric, Boolean, ForeignKey, JSON
from sqlalchemy.orm import relationship

from app.db.base import Base


class MaintenanceSchedule(Base):
    """
    Maintenance schedule - a recurrence rule bound to one equipment unit

    Triggers (at least one must be set):
    - Calendar: every frequency_value frequency_unit (days/weeks/months/years)
    - Usage: every hours_interval hours on the equipment hour meter

    Schedules are soft-deactivated (is_active=False), never deleted.
    """
    __tablename__ = "maintenance_schedules"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment_units.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # preventive, inspection, certification, other
    maintenance_type = Column(String(50), nullable=False, index=True)

    # Calendar trigger
    frequency_value = Column(Integer, nullable=True)
    frequency_unit = Column(String(20), nullable=True)

    # Usage-hours trigger
    hours_interval = Column(Numeric(12, 2), nullable=True)

    # Warning lead time
    warning_days = Column(Integer, nullable=True)
    warning_hours = Column(Numeric(12, 2), nullable=True)

    # Ordered task descriptions, parts, certifications
    task_checklist = Column(JSON, nullable=True, default=list)
    required_parts = Column(JSON, nullable=True, default=list)
    required_certifications = Column(JSON, nullable=True, default=list)

    assigned_to = Column(String(100), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_regulatory_requirement = Column(Boolean, nullable=False, default=False)
    regulation_reference = Column(String(255), nullable=True)

    # Completion baseline
    last_completed_at = Column(Date, nullable=True)
    last_completed_hours = Column(Numeric(12, 2), nullable=True)

    # Set when a work order was requested for the current overdue episode;
    # cleared on completion
    overdue_flagged_at = Column(DateTime, nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    equipment = relationship("EquipmentUnit", back_populates="schedules")

    @property
    def has_calendar_trigger(self) -> bool:
        return bool(self.frequency_value) and bool(self.frequency_unit)

    @property
    def has_usage_trigger(self) -> bool:
        return self.hours_interval is not None and self.hours_interval > 0

    def __repr__(self):
        return f"<MaintenanceSchedule {self.id}: {self.name} on Equipment {self.equipment_id}>"


class MaintenanceRecord(Base):
    """
    Maintenance record - a completed unit of work

    Immutable once created. A correction is a new record pointing at the
    record it corrects through corrects_record_id.
    """
    __tablename__ = "maintenance_records"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment_units.id"), nullable=False, index=True)
    work_order_id = Column(Integer, ForeignKey("maintenance_work_orders.id"), nullable=True, index=True)
    schedule_id = Column(Integer, ForeignKey("maintenance_schedules.id"), nullable=True, index=True)
    corrects_record_id = Column(Integer, ForeignKey("maintenance_records.id"), nullable=True)

    record_type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    performed_at = Column(Date, nullable=False, index=True)
    performed_by = Column(String(100), nullable=True)

    hour_meter_reading = Column(Numeric(12, 2), nullable=True)

    work_performed = Column(Text, nullable=True)
    findings = Column(Text, nullable=True)
    passed = Column(Boolean, nullable=True)

    # Certification
    is_certification_record = Column(Boolean, nullable=False, default=False)
    certification_type = Column(String(100), nullable=True)
    certification_expiry = Column(Date, nullable=True)

    # Cost tracking
    labor_cost = Column(Numeric(10, 2), nullable=True)
    parts_cost = Column(Numeric(10, 2), nullable=True)
    total_cost = Column(Numeric(10, 2), nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    equipment = relationship("EquipmentUnit", back_populates="maintenance_records")
    receipts = relationship("MaintenanceReceipt", back_populates="maintenance_record")

    def __repr__(self):
        return f"<MaintenanceRecord {self.id}: {self.record_type} on Equipment {self.equipment_id}>"


class MaintenanceReceipt(Base):
    """
    Maintenance receipt - invoice or receipt documenting maintenance spend
    """
    __tablename__ = "maintenance_receipts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment_units.id"), nullable=False, index=True)
    maintenance_record_id = Column(Integer, ForeignKey("maintenance_records.id"), nullable=True, index=True)
    work_order_id = Column(Integer, ForeignKey("maintenance_work_orders.id"), nullable=True)

    # mobile_photo, pdf_upload, email_forward, manual_entry, vendor_portal
    source = Column(String(30), nullable=False, default="manual_entry")
    receipt_number = Column(String(100), nullable=True)
    receipt_date = Column(Date, nullable=False, index=True)
    vendor_name = Column(String(255), nullable=True)

    total_amount = Column(Numeric(10, 2), nullable=True)
    tax_amount = Column(Numeric(10, 2), nullable=True)
    expense_category = Column(String(50), nullable=True)

    notes = Column(Text, nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    maintenance_record = relationship("MaintenanceRecord", back_populates="receipts")

    def __repr__(self):
        return f"<MaintenanceReceipt {self.id}: {self.vendor_name} {self.total_amount}>"
