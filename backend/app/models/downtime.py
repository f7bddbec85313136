"""
Downtime Event model

An interval during which a piece of equipment was unavailable.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.db.base import Base


class DowntimeEvent(Base):
    """
    Downtime event - opened when equipment goes down, closed when resolved

    ended_at stays NULL while the outage is ongoing. duration_minutes is
    computed once, when the event is closed.
    """
    __tablename__ = "equipment_downtime"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment_units.id"), nullable=False, index=True)
    work_order_id = Column(Integer, ForeignKey("maintenance_work_orders.id"), nullable=True)

    started_at = Column(DateTime, nullable=False, index=True)
    ended_at = Column(DateTime, nullable=True, index=True)
    duration_minutes = Column(Integer, nullable=True)

    # breakdown, scheduled_maintenance, inspection, other
    reason = Column(String(50), nullable=False, index=True)
    reason_details = Column(Text, nullable=True)
    resolution_notes = Column(Text, nullable=True)

    reported_by = Column(String(100), nullable=True)
    resolved_by = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    equipment = relationship("EquipmentUnit", back_populates="downtime_events")

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def __repr__(self):
        return f"<DowntimeEvent {self.id}: {self.reason} on Equipment {self.equipment_id}>"
