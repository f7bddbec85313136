"""
Compliance evidence and scoring schemas

Everything here is derived on request and never stored.
"""
from pydantic import BaseModel, Field
from typing import Literal, Optional, List
from datetime import date
from enum import Enum

from app.schemas.downtime import AvailabilityStats
from app.schemas.equipment import CostStats


class ScoreMode(str, Enum):
    QUICK = "quick"
    FULL = "full"
    SUMMARY = "summary"
    EXPORT = "export"


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    HTML = "html"


class GapSeverity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


# ============================================================================
# Evidence
# ============================================================================

class EvidenceItem(BaseModel):
    """A record, work order, receipt or schedule cited as evidence"""
    source: str = Field(..., description="record, work_order, receipt, schedule")
    id: int
    equipment_id: int
    equipment_code: str
    evidence_date: date
    title: str
    maintenance_type: Optional[str] = None
    certification_type: Optional[str] = None
    counts: bool = Field(True, description="False when cited for context only")
    is_regulatory: bool = False
    overdue: bool = False


class EvidenceBucket(BaseModel):
    """Evidence classified under one sub-requirement, newest first"""
    sub_requirement_id: str
    name: str
    items: List[EvidenceItem] = Field(default_factory=list)
    evidence_count: int = 0
    population: int = Field(0, description="Denominator for share and declared-certification counts")
    overdue_regulatory: bool = False


class EquipmentEvidenceStats(BaseModel):
    equipment_id: int
    equipment_code: str
    availability: AvailabilityStats
    costs: CostStats


class EvidenceBundle(BaseModel):
    """Evidence for one element across the tenant's equipment in scope"""
    company_id: int
    element_id: int
    element_name: str
    as_of: date
    lookback_start: date
    equipment_ids: List[int]
    buckets: List[EvidenceBucket]
    unclassified: List[EvidenceItem] = Field(default_factory=list)
    equipment_stats: List[EquipmentEvidenceStats] = Field(default_factory=list)


# ============================================================================
# Scores
# ============================================================================

class SubRequirementScore(BaseModel):
    sub_requirement_id: str
    name: str
    weight: float
    evidence_count: int
    required_count: Optional[int] = Field(None, description="None for presence-only policies")
    score: float
    capped: bool = Field(False, description="Capped by an overdue regulatory schedule")
    latest_evidence: List[EvidenceItem] = Field(default_factory=list, description="Two most recent counted items")


class Gap(BaseModel):
    sub_requirement_id: str
    name: str
    score: float
    severity: GapSeverity
    missing_evidence: str
    affected_equipment: List[str] = Field(default_factory=list)


class ComplianceScore(BaseModel):
    """Score for one element"""
    element_id: int
    element_name: str
    mode: Literal[ScoreMode.FULL, ScoreMode.EXPORT]
    as_of: date
    overall_score: float
    grade: str
    equipment_count: int
    sub_scores: List[SubRequirementScore] = Field(default_factory=list)
    gaps: List[Gap] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list, description="Most severe gap first")
    evidence: Optional[EvidenceBundle] = None


class QuickScore(BaseModel):
    """Headline number for dashboards"""
    element_id: int
    element_name: str
    mode: ScoreMode = ScoreMode.QUICK
    as_of: date
    overall_score: float
    grade: str
    equipment_count: int


class SubRequirementCount(BaseModel):
    sub_requirement_id: str
    name: str
    evidence_count: int
    context_count: int


class EvidenceSummary(BaseModel):
    """Evidence counts without scoring"""
    element_id: int
    element_name: str
    mode: ScoreMode = ScoreMode.SUMMARY
    as_of: date
    equipment_count: int
    counts: List[SubRequirementCount]
    unclassified_count: int
