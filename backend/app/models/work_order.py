"""
Work Order models

One maintenance task instance and its append-only note trail.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Date, Numeric, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from app.db.base import Base


class WorkOrder(Base):
    """
    Maintenance work order

    Status flow (see app.core.status_config):
    requested -> approved -> scheduled -> in_progress -> completed -> closed
    plus cancelled from any non-terminal status.

    version increments on every status write; transitions are applied with
    a conditional UPDATE on (status, version).
    """
    __tablename__ = "maintenance_work_orders"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    work_order_number = Column(String(30), nullable=False, index=True)

    equipment_id = Column(Integer, ForeignKey("equipment_units.id"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("maintenance_schedules.id"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    maintenance_type = Column(String(50), nullable=False, index=True)

    status = Column(String(30), nullable=False, default="requested", index=True)
    priority = Column(String(20), nullable=False, default="medium", index=True)
    safety_concern = Column(Boolean, nullable=False, default=False)

    # Dates
    requested_date = Column(Date, nullable=False)
    scheduled_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # People
    requested_by = Column(String(100), nullable=True)
    assigned_to = Column(String(100), nullable=True, index=True)

    # Labor and cost
    estimated_labor_hours = Column(Numeric(8, 2), nullable=True)
    actual_labor_hours = Column(Numeric(8, 2), nullable=True)
    estimated_cost = Column(Numeric(10, 2), nullable=True)
    actual_cost = Column(Numeric(10, 2), nullable=True)

    # Approval
    approval_required = Column(Boolean, nullable=False, default=False)
    approved = Column(Boolean, nullable=False, default=False)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    problem_description = Column(Text, nullable=True)
    resolution_notes = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    equipment = relationship("EquipmentUnit", back_populates="work_orders")
    notes = relationship(
        "WorkOrderNote",
        back_populates="work_order",
        order_by="WorkOrderNote.created_at",
    )

    def __repr__(self):
        return f"<WorkOrder {self.work_order_number}: {self.title} ({self.status})>"


class WorkOrderNote(Base):
    """Append-only note on a work order. Allowed after the order is closed."""
    __tablename__ = "work_order_notes"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    work_order_id = Column(Integer, ForeignKey("maintenance_work_orders.id"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    author = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    work_order = relationship("WorkOrder", back_populates="notes")

    def __repr__(self):
        return f"<WorkOrderNote {self.id} on WorkOrder {self.work_order_id}>"
