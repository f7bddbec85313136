"""
Version 1 of the CorTrack HTTP surface
"""
from fastapi import APIRouter
from app.api.v1.endpoints import (
    schedules,
    work_orders,
    downtime,
    records,
    equipment,
    compliance,
)
from app.schemas.common import ErrorResponse

# Documented on every route; the handlers in app.main produce this body
_ERRORS = {code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409)}

router = APIRouter(responses=_ERRORS)

router.include_router(schedules.router, prefix="/schedules", tags=["schedules"])
router.include_router(work_orders.router, prefix="/work-orders", tags=["work-orders"])
router.include_router(downtime.router, prefix="/downtime", tags=["downtime"])
# records and their receipts
router.include_router(records.router, prefix="/records", tags=["records"])
# per-unit costs, availability and history
router.include_router(equipment.router, prefix="/equipment", tags=["equipment"])
router.include_router(compliance.router, prefix="/compliance", tags=["compliance"])
