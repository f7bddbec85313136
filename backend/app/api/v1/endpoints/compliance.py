"""
Compliance API Endpoints

Audit-readiness scoring for regulatory elements, evidence summaries and
evidence export.
"""
from datetime import date
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_identity
from app.core.security import CallerIdentity
from app.db.session import get_db
from app.schemas.compliance import (
    ComplianceScore,
    EvidenceSummary,
    ExportFormat,
    QuickScore,
    ScoreMode,
)
from app.services import compliance_scorer

router = APIRouter()


@router.get(
    "/elements/{element_id}/score",
    response_model=Union[ComplianceScore, QuickScore, EvidenceSummary],
)
async def score_element(
    element_id: int,
    mode: ScoreMode = ScoreMode.FULL,
    equipment_id: Optional[List[int]] = Query(None, description="Limit scope to these units"),
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """
    Score an element

    - **quick**: headline score and grade only
    - **full**: per sub-requirement scores and gaps
    - **summary**: evidence counts, unscored
    - **export**: full plus the evidence bundle
    """
    return compliance_scorer.score_element(
        db, identity.company_id, element_id, mode, equipment_ids=equipment_id, as_of=as_of
    )


@router.get("/elements/{element_id}/summary", response_model=EvidenceSummary)
async def evidence_summary(
    element_id: int,
    equipment_id: Optional[List[int]] = Query(None),
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    return compliance_scorer.evidence_summary(
        db, identity.company_id, element_id, equipment_ids=equipment_id, as_of=as_of
    )


@router.get("/elements/{element_id}/export")
async def export_evidence(
    element_id: int,
    format: ExportFormat = ExportFormat.JSON,
    equipment_id: Optional[List[int]] = Query(None),
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    identity: CallerIdentity = Depends(get_current_identity),
):
    """Download the scored evidence as json, csv or html"""
    content, media_type = compliance_scorer.export_evidence(
        db, identity.company_id, element_id, format, equipment_ids=equipment_id, as_of=as_of
    )
    filename = f"element-{element_id}-evidence.{format.value}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
