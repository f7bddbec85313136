"""
Equipment Aggregate API Endpoints

Read-only rollups for one equipment unit: maintenance costs, availability
and the combined history timeline.
"""
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_identity
from app.core.security import CallerIdentity
from app.db.session import get_db
from app.schemas.downtime import AvailabilityStats
from app.schemas.equipment import CostStats, EquipmentHistory
from app.services import cost_service, downtime_service, history_service

router = APIRouter()


@router.get("/{equipment_id}/costs", response_model=CostStats)
async def get_equipment_costs(
    equipment_id: int,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """
    Maintenance spend for one unit

    Defaults to the year ending today. The monthly trend always covers the
    12 months ending at **period_end**.
    """
    return cost_service.equipment_costs(
        db, identity.company_id, equipment_id, period_start=period_start, period_end=period_end
    )


@router.get("/{equipment_id}/availability", response_model=AvailabilityStats)
async def get_equipment_availability(
    equipment_id: int,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
    days: int = Query(30, ge=1, le=3650, description="Window length when window_start is omitted"),
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """Availability, MTBF and MTTR over a window (default: the last 30 days)"""
    window_end = window_end or datetime.utcnow()
    window_start = window_start or window_end - timedelta(days=days)
    return downtime_service.equipment_availability(
        db, identity.company_id, equipment_id, window_start, window_end
    )


@router.get("/{equipment_id}/history", response_model=EquipmentHistory)
async def get_equipment_history(
    equipment_id: int,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """Records, receipts, work orders, downtime and schedules, newest first"""
    return history_service.equipment_history(db, identity.company_id, equipment_id)
