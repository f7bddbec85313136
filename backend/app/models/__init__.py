"""Database models"""
from app.models.equipment import EquipmentUnit
from app.models.maintenance import MaintenanceSchedule, MaintenanceRecord, MaintenanceReceipt
from app.models.work_order import WorkOrder, WorkOrderNote
from app.models.downtime import DowntimeEvent

__all__ = [
    # Equipment
    "EquipmentUnit",
    # Maintenance
    "MaintenanceSchedule",
    "MaintenanceRecord",
    "MaintenanceReceipt",
    # Work orders
    "WorkOrder",
    "WorkOrderNote",
    # Downtime
    "DowntimeEvent",
]
