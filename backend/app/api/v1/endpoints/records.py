"""
Maintenance Record API Endpoints

Records of work performed, and the receipts that back them.
"""
from datetime import date
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_identity, get_pagination_params
from app.core.security import CallerIdentity
from app.db.session import get_db
from app.schemas.common import PaginationMeta, PaginationParams
from app.schemas.maintenance import (
    MaintenanceRecordCreate,
    MaintenanceRecordFilters,
    MaintenanceRecordListResponse,
    MaintenanceRecordResponse,
    ReceiptCreate,
    ReceiptListResponse,
    ReceiptResponse,
    RecordType,
)
from app.services import record_service

router = APIRouter()


@router.get("/", response_model=MaintenanceRecordListResponse)
async def list_records(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    equipment_id: Optional[int] = None,
    record_type: Optional[List[RecordType]] = Query(None),
    performed_after: Optional[date] = None,
    performed_before: Optional[date] = None,
    certification_only: bool = False,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    filters = MaintenanceRecordFilters(
        equipment_id=equipment_id,
        record_types=record_type,
        performed_after=performed_after,
        performed_before=performed_before,
        certification_only=certification_only,
    )
    records, total = record_service.list_maintenance_records(
        db, identity.company_id, filters, limit=pagination.limit, offset=pagination.offset
    )
    return MaintenanceRecordListResponse(
        items=[MaintenanceRecordResponse.model_validate(record) for record in records],
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(records),
        ),
    )


@router.post("/", response_model=MaintenanceRecordResponse, status_code=201)
async def create_record(
    data: MaintenanceRecordCreate,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """
    Record maintenance performed

    Completes the linked schedule and advances the equipment hour meter.
    To correct a record, post a new one with **corrects_record_id**.
    """
    record = record_service.create_maintenance_record(db, identity.company_id, data, identity)
    return MaintenanceRecordResponse.model_validate(record)


@router.get("/receipts", response_model=ReceiptListResponse)
async def list_receipts(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    equipment_id: Optional[int] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    receipts, total = record_service.list_receipts(
        db, identity.company_id, equipment_id=equipment_id, limit=pagination.limit, offset=pagination.offset
    )
    return ReceiptListResponse(
        items=[ReceiptResponse.model_validate(receipt) for receipt in receipts],
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(receipts),
        ),
    )


@router.post("/receipts", response_model=ReceiptResponse, status_code=201)
async def create_receipt(
    data: ReceiptCreate,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    receipt = record_service.create_receipt(db, identity.company_id, data, identity)
    return ReceiptResponse.model_validate(receipt)


@router.get("/{record_id}", response_model=MaintenanceRecordResponse)
async def get_record(
    record_id: int,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    record = record_service.get_maintenance_record(db, identity.company_id, record_id)
    return MaintenanceRecordResponse.model_validate(record)
