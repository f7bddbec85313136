"""
Equipment Unit model

One physical asset within a tenant. Units are never deleted, only retired.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON
from sqlalchemy.orm import relationship

from app.db.base import Base


class EquipmentUnit(Base):
    """
    Equipment unit - anything that gets inspected or maintained

    Status values:
    - active: in service
    - out_of_service: unavailable (open downtime or pulled from use)
    - retired: permanently removed from the fleet, kept for history
    """
    __tablename__ = "equipment_units"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)

    # Identification
    equipment_code = Column(String(50), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    equipment_type = Column(String(100), nullable=False, index=True)

    # Hour meter, null when the unit has none
    current_usage_hours = Column(Numeric(12, 2), nullable=True)

    status = Column(String(30), nullable=False, default="active", index=True)

    # Certification names this unit must keep current, e.g. ["annual_crane_cert"]
    certifications_required = Column(JSON, nullable=True, default=list)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    schedules = relationship("MaintenanceSchedule", back_populates="equipment")
    work_orders = relationship("WorkOrder", back_populates="equipment")
    maintenance_records = relationship("MaintenanceRecord", back_populates="equipment")
    downtime_events = relationship("DowntimeEvent", back_populates="equipment")

    def __repr__(self):
        return f"<EquipmentUnit {self.equipment_code}: {self.name} ({self.status})>"
