"""
Shapes shared by every resource: the error body and offset pagination.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

MAX_PAGE_SIZE = 500


class ErrorResponse(BaseModel):
    """
    Body of every non-2xx answer.

    ``error`` is one of VALIDATION_ERROR (400/422), AUTHENTICATION_ERROR (401),
    PERMISSION_DENIED (403), NOT_FOUND (404), INVALID_TRANSITION,
    CONCURRENT_MODIFICATION or ALREADY_CLOSED (409), DATABASE_ERROR or
    INTERNAL_ERROR (500).
    """
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime

    class Config:
        json_schema_extra = {
            "example": {
                "error": "ALREADY_CLOSED",
                "message": "Downtime event 12 is already closed",
                "details": {"resource": "Downtime event", "resource_id": "12"},
                "timestamp": "2026-03-02T10:30:00Z",
            }
        }


class PaginationParams(BaseModel):
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=MAX_PAGE_SIZE)


class PaginationMeta(BaseModel):
    """Returned next to ``items`` on list endpoints"""
    total: int = Field(..., description="Rows matching the filters before paging")
    offset: int
    limit: int
    returned: int
