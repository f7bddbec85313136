"""
Downtime API Endpoints
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_identity, get_pagination_params
from app.core.security import CallerIdentity
from app.db.session import get_db
from app.schemas.common import PaginationMeta, PaginationParams
from app.schemas.downtime import DowntimeEnd, DowntimeListResponse, DowntimeResponse, DowntimeStart
from app.services import downtime_service

router = APIRouter()


@router.get("/", response_model=DowntimeListResponse)
async def list_downtime(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    equipment_id: Optional[int] = None,
    include_open: bool = True,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """
    List downtime events, newest first

    - **include_open**: include events that have not ended yet
    """
    events, total = downtime_service.list_downtime(
        db,
        identity.company_id,
        equipment_id=equipment_id,
        include_open=include_open,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return DowntimeListResponse(
        items=[DowntimeResponse.model_validate(event) for event in events],
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(events),
        ),
    )


@router.post("/", response_model=DowntimeResponse, status_code=201)
async def start_downtime(
    data: DowntimeStart,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    event = downtime_service.start_downtime(db, identity.company_id, data, identity)
    return DowntimeResponse.model_validate(event)


@router.post("/{event_id}/end", response_model=DowntimeResponse)
async def end_downtime(
    event_id: int,
    data: Optional[DowntimeEnd] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """Close a downtime event. A second close returns 409."""
    event = downtime_service.end_downtime(db, identity.company_id, event_id, identity, data)
    return DowntimeResponse.model_validate(event)
