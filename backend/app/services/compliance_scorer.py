"""
Compliance Scorer

Turns an element's evidence into a 0-100 audit-readiness score.

Modes:
- quick: headline score from SQL counts, no evidence rows loaded
- full: per sub-requirement breakdown with gaps
- summary: evidence counts without scoring
- export: full, with the evidence bundle attached and serialized

Scores are computed fresh on every call.
"""
import csv
import html
import io
from datetime import date
from typing import Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.logging_config import get_logger
from app.models.equipment import EquipmentUnit
from app.schemas.compliance import (
    ComplianceScore,
    EvidenceBucket,
    EvidenceBundle,
    EvidenceSummary,
    ExportFormat,
    Gap,
    GapSeverity,
    QuickScore,
    ScoreMode,
    SubRequirementCount,
    SubRequirementScore,
)
from app.services.evidence_finder import (
    ElementPolicy,
    SubRequirement,
    count_evidence,
    covered_certifications,
    declared_certifications,
    find_evidence,
    get_element_policy,
    overdue_regulatory_flags,
    resolve_scope,
)

logger = get_logger(__name__)

GRADE_THRESHOLDS = [
    (90.0, "A"),
    (80.0, "B"),
    (70.0, "C"),
    (60.0, "D"),
]

# Sub-scores at or above this are reported as strengths
STRENGTH_THRESHOLD = 90.0
# Below this the element itself is flagged for attention
FOCUS_THRESHOLD = 60.0
MAX_LISTED_EQUIPMENT = 5

SEVERITY_ORDER = {
    GapSeverity.CRITICAL: 0,
    GapSeverity.MAJOR: 1,
    GapSeverity.MINOR: 2,
}

MEDIA_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.CSV: "text/csv",
    ExportFormat.HTML: "text/html",
}


def grade_for(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def severity_for(score: float) -> GapSeverity:
    if score <= 0:
        return GapSeverity.CRITICAL
    if score < 50:
        return GapSeverity.MAJOR
    return GapSeverity.MINOR


def score_sub_requirement(
    sub: SubRequirement,
    evidence_count: int,
    equipment_count: int,
    overdue_regulatory: bool,
    regulatory_cap: float,
    population: Optional[int] = None,
) -> Tuple[float, bool]:
    """
    Returns (score, capped).

    Fixed-count requirements score min(100, count / required * 100). Share
    requirements divide by their population, scoring 0 when it is empty.
    Presence-only requirements score 100 with any evidence, else 0. An
    overdue regulatory schedule holds the score at regulatory_cap or below.
    """
    required = sub.required_total(equipment_count, population)
    if required is None:
        score = 100.0 if evidence_count > 0 else 0.0
    elif required <= 0:
        score = 0.0
    else:
        score = min(100.0, evidence_count / required * 100.0)

    capped = False
    if overdue_regulatory and score > regulatory_cap:
        score = regulatory_cap
        capped = True
    return round(score, 2), capped


def overall_score(policy: ElementPolicy, scores: Dict[str, float]) -> float:
    if not policy.sub_requirements:
        return 0.0
    if policy.weighting == "equal":
        total = sum(scores[sub.id] for sub in policy.sub_requirements)
        return round(total / len(policy.sub_requirements), 2)
    weight_total = sum(sub.weight for sub in policy.sub_requirements)
    if weight_total <= 0:
        return 0.0
    weighted = sum(scores[sub.id] * sub.weight for sub in policy.sub_requirements)
    return round(weighted / weight_total, 2)


def _thresholds(gap_threshold: Optional[float], regulatory_cap: Optional[float]) -> Tuple[float, float]:
    settings = get_settings()
    if gap_threshold is None:
        gap_threshold = settings.COMPLIANCE_GAP_THRESHOLD
    if regulatory_cap is None:
        regulatory_cap = settings.OVERDUE_REGULATORY_SCORE_CAP
    return gap_threshold, regulatory_cap


def _affected_equipment(
    sub: SubRequirement,
    bucket: EvidenceBucket,
    codes: Dict[int, str],
    declared: Set[Tuple[int, str]],
) -> List[str]:
    """Codes of units short of their share of the evidence."""
    if sub.share:
        short = {item.equipment_id for item in bucket.items if not item.counts}
        return sorted(codes[equipment_id] for equipment_id in short if equipment_id in codes)
    if sub.count_by == "certifications" and declared:
        covered = covered_certifications(
            (item.equipment_id, item.certification_type) for item in bucket.items if item.counts
        )
        short = {equipment_id for equipment_id, _ in declared - covered}
        return sorted(codes[equipment_id] for equipment_id in short if equipment_id in codes)

    per_unit: Dict[int, int] = {equipment_id: 0 for equipment_id in codes}
    for item in bucket.items:
        if item.counts and item.equipment_id in per_unit:
            per_unit[item.equipment_id] += 1

    if sub.per_equipment and sub.required_count is not None:
        needed = 1 if sub.count_by == "equipment" else sub.required_count
    else:
        needed = 1
    return sorted(codes[equipment_id] for equipment_id, count in per_unit.items() if count < needed)


def _equipment_in_scope(db: Session, company_id: int, equipment_ids: Sequence[int]):
    if not equipment_ids:
        return []
    return db.query(
        EquipmentUnit.id, EquipmentUnit.equipment_code, EquipmentUnit.certifications_required
    ).filter(
        EquipmentUnit.company_id == company_id,
        EquipmentUnit.id.in_(list(equipment_ids)),
    ).all()


def strengths_for(sub_scores: List[SubRequirementScore]) -> List[str]:
    return [f"{sub.name}: {sub.score:.0f}%" for sub in sub_scores if sub.score >= STRENGTH_THRESHOLD]


def recommendations_for(policy: ElementPolicy, overall: float, gaps: List[Gap]) -> List[str]:
    """Element-level advice first, then one line per gap, most severe first."""
    recommendations = []
    if gaps and overall < FOCUS_THRESHOLD:
        recommendations.append(f"Focus on improving Element {policy.element_id}: {policy.name}")
    critical = [gap for gap in gaps if gap.severity == GapSeverity.CRITICAL]
    if critical:
        plural = "s" if len(critical) > 1 else ""
        recommendations.append(f"Address {len(critical)} critical gap{plural} immediately")

    for gap in sorted(gaps, key=lambda g: (SEVERITY_ORDER[g.severity], g.score)):
        line = f"{gap.name}: {gap.missing_evidence}"
        if gap.affected_equipment:
            shown = gap.affected_equipment[:MAX_LISTED_EQUIPMENT]
            line += f" ({', '.join(shown)}"
            hidden = len(gap.affected_equipment) - len(shown)
            if hidden:
                line += f" and {hidden} more"
            line += ")"
        recommendations.append(line)
    return recommendations


def score_bundle(
    db: Session,
    policy: ElementPolicy,
    bundle: EvidenceBundle,
    mode: ScoreMode,
    gap_threshold: Optional[float] = None,
    regulatory_cap: Optional[float] = None,
) -> ComplianceScore:
    """Score an already assembled evidence bundle."""
    gap_threshold, regulatory_cap = _thresholds(gap_threshold, regulatory_cap)
    equipment_count = len(bundle.equipment_ids)
    units = _equipment_in_scope(db, bundle.company_id, bundle.equipment_ids)
    codes = {unit.id: unit.equipment_code for unit in units}
    declared = declared_certifications(units)
    buckets = {bucket.sub_requirement_id: bucket for bucket in bundle.buckets}

    sub_scores = []
    gaps = []
    scores: Dict[str, float] = {}
    for sub in policy.sub_requirements:
        bucket = buckets[sub.id]
        score, capped = score_sub_requirement(
            sub, bucket.evidence_count, equipment_count, bucket.overdue_regulatory, regulatory_cap,
            population=bucket.population,
        )
        scores[sub.id] = score
        sub_scores.append(SubRequirementScore(
            sub_requirement_id=sub.id,
            name=sub.name,
            weight=sub.weight,
            evidence_count=bucket.evidence_count,
            required_count=sub.required_total(equipment_count, bucket.population),
            score=score,
            capped=capped,
            latest_evidence=[item for item in bucket.items if item.counts][:2],
        ))
        if score < gap_threshold:
            gaps.append(Gap(
                sub_requirement_id=sub.id,
                name=sub.name,
                score=score,
                severity=severity_for(score),
                missing_evidence=sub.missing_evidence,
                affected_equipment=_affected_equipment(sub, bucket, codes, declared),
            ))

    overall = overall_score(policy, scores)
    return ComplianceScore(
        element_id=policy.element_id,
        element_name=policy.name,
        mode=mode,
        as_of=bundle.as_of,
        overall_score=overall,
        grade=grade_for(overall),
        equipment_count=equipment_count,
        sub_scores=sub_scores,
        gaps=gaps,
        strengths=strengths_for(sub_scores),
        recommendations=recommendations_for(policy, overall, gaps),
        evidence=bundle if mode == ScoreMode.EXPORT else None,
    )


# ============================================================================
# Modes
# ============================================================================

def quick_score(
    db: Session,
    company_id: int,
    element_id: int,
    equipment_ids: Optional[Sequence[int]] = None,
    as_of: Optional[date] = None,
    regulatory_cap: Optional[float] = None,
) -> QuickScore:
    """Headline score from SQL counts. Agrees with the full-mode overall score."""
    policy = get_element_policy(element_id)
    _, regulatory_cap = _thresholds(None, regulatory_cap)
    scope = resolve_scope(db, company_id, equipment_ids, as_of)
    counts = count_evidence(db, policy, scope)
    flags = overdue_regulatory_flags(db, policy, scope)

    equipment_count = len(scope.equipment)
    scores = {
        sub.id: score_sub_requirement(
            sub, counts[sub.id][0], equipment_count, flags[sub.id], regulatory_cap,
            population=counts[sub.id][1],
        )[0]
        for sub in policy.sub_requirements
    }
    overall = overall_score(policy, scores)
    return QuickScore(
        element_id=policy.element_id,
        element_name=policy.name,
        as_of=scope.as_of,
        overall_score=overall,
        grade=grade_for(overall),
        equipment_count=equipment_count,
    )


def evidence_summary(
    db: Session,
    company_id: int,
    element_id: int,
    equipment_ids: Optional[Sequence[int]] = None,
    as_of: Optional[date] = None,
) -> EvidenceSummary:
    """Per sub-requirement evidence and context counts, unscored."""
    bundle = find_evidence(db, company_id, element_id, equipment_ids, as_of, include_stats=False)
    return EvidenceSummary(
        element_id=bundle.element_id,
        element_name=bundle.element_name,
        as_of=bundle.as_of,
        equipment_count=len(bundle.equipment_ids),
        counts=[
            SubRequirementCount(
                sub_requirement_id=bucket.sub_requirement_id,
                name=bucket.name,
                evidence_count=bucket.evidence_count,
                context_count=sum(1 for item in bucket.items if not item.counts),
            )
            for bucket in bundle.buckets
        ],
        unclassified_count=len(bundle.unclassified),
    )


def score_element(
    db: Session,
    company_id: int,
    element_id: int,
    mode: ScoreMode = ScoreMode.FULL,
    equipment_ids: Optional[Sequence[int]] = None,
    as_of: Optional[date] = None,
    gap_threshold: Optional[float] = None,
    regulatory_cap: Optional[float] = None,
):
    """
    Score one element in the requested mode.

    Returns a QuickScore, EvidenceSummary or ComplianceScore depending on
    mode. Export mode attaches the full evidence bundle, including
    per-equipment availability and cost stats.

    Raises:
        NotFoundError: unknown element_id
    """
    if mode == ScoreMode.QUICK:
        result = quick_score(db, company_id, element_id, equipment_ids, as_of, regulatory_cap)
    elif mode == ScoreMode.SUMMARY:
        result = evidence_summary(db, company_id, element_id, equipment_ids, as_of)
    else:
        policy = get_element_policy(element_id)
        bundle = find_evidence(
            db,
            company_id,
            element_id,
            equipment_ids,
            as_of,
            include_stats=mode == ScoreMode.EXPORT,
        )
        result = score_bundle(db, policy, bundle, mode, gap_threshold, regulatory_cap)

    logger.info(
        f"Element {element_id} scored in {mode.value} mode",
        extra={
            "company_id": company_id,
            "element_id": element_id,
            "mode": mode.value,
            "overall_score": getattr(result, "overall_score", None),
        },
    )
    return result


# ============================================================================
# Export
# ============================================================================

EVIDENCE_COLUMNS = [
    "Sub-requirement",
    "Source",
    "ID",
    "Equipment",
    "Date",
    "Title",
    "Type",
    "Counts",
    "Regulatory",
    "Overdue",
]


def _evidence_rows(bundle: EvidenceBundle) -> List[List[str]]:
    rows = []
    for bucket in bundle.buckets:
        for item in bucket.items:
            rows.append(_evidence_row(bucket.name, item))
    for item in bundle.unclassified:
        rows.append(_evidence_row("Unclassified", item))
    return rows


def _evidence_row(section: str, item) -> List[str]:
    return [
        section,
        item.source,
        str(item.id),
        item.equipment_code,
        item.evidence_date.isoformat(),
        item.title,
        item.maintenance_type or "",
        "yes" if item.counts else "no",
        "yes" if item.is_regulatory else "no",
        "yes" if item.overdue else "no",
    ]


def _render_csv(score: ComplianceScore) -> str:
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(["Element", "Name", "As Of", "Overall Score", "Grade", "Equipment"])
    writer.writerow([
        score.element_id,
        score.element_name,
        score.as_of.isoformat(),
        f"{score.overall_score:.2f}",
        score.grade,
        score.equipment_count,
    ])
    writer.writerow([])

    writer.writerow(["Sub-requirement", "Weight", "Evidence", "Required", "Score", "Capped"])
    for sub in score.sub_scores:
        writer.writerow([
            sub.name,
            f"{sub.weight:g}",
            sub.evidence_count,
            "" if sub.required_count is None else sub.required_count,
            f"{sub.score:.2f}",
            "yes" if sub.capped else "no",
        ])
    writer.writerow([])

    writer.writerow(EVIDENCE_COLUMNS)
    for row in _evidence_rows(score.evidence):
        writer.writerow(row)

    return output.getvalue()


def _render_html(score: ComplianceScore) -> str:
    esc = html.escape

    def table(headers: List[str], rows: List[List]) -> str:
        head = "".join(f"<th>{esc(str(h))}</th>" for h in headers)
        body = "".join(
            "<tr>" + "".join(f"<td>{esc(str(cell))}</td>" for cell in row) + "</tr>"
            for row in rows
        )
        return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"

    def bullets(lines: List[str]) -> str:
        if not lines:
            return "<p>None</p>"
        return "<ul>" + "".join(f"<li>{esc(line)}</li>" for line in lines) + "</ul>"

    sub_rows = [
        [sub.name, f"{sub.score:.2f}", sub.evidence_count, "" if sub.required_count is None else sub.required_count]
        for sub in score.sub_scores
    ]
    gap_rows = [
        [gap.name, gap.severity.value, gap.missing_evidence, ", ".join(gap.affected_equipment)]
        for gap in score.gaps
    ]
    title = f"Element {score.element_id}: {score.element_name}"
    parts = [
        "<!DOCTYPE html>",
        f"<html><head><meta charset=\"utf-8\"><title>{esc(title)}</title></head><body>",
        f"<h1>{esc(title)}</h1>",
        f"<p>As of {score.as_of.isoformat()}. Overall score {score.overall_score:.2f} "
        f"(grade {esc(score.grade)}) across {score.equipment_count} equipment units.</p>",
        "<h2>Sub-requirements</h2>",
        table(["Sub-requirement", "Score", "Evidence", "Required"], sub_rows),
        "<h2>Gaps</h2>",
        table(["Sub-requirement", "Severity", "Missing evidence", "Equipment"], gap_rows) if gap_rows else "<p>None</p>",
        "<h2>Strengths</h2>",
        bullets(score.strengths),
        "<h2>Recommendations</h2>",
        bullets(score.recommendations),
        "<h2>Evidence</h2>",
        table(EVIDENCE_COLUMNS, _evidence_rows(score.evidence)),
        "</body></html>",
    ]
    return "\n".join(parts)


def export_evidence(
    db: Session,
    company_id: int,
    element_id: int,
    fmt: ExportFormat = ExportFormat.JSON,
    equipment_ids: Optional[Sequence[int]] = None,
    as_of: Optional[date] = None,
) -> Tuple[str, str]:
    """
    Full score plus evidence, serialized. Returns (content, media_type).
    Unclassified evidence is included for transparency.
    """
    score = score_element(db, company_id, element_id, ScoreMode.EXPORT, equipment_ids, as_of)
    if fmt == ExportFormat.CSV:
        content = _render_csv(score)
    elif fmt == ExportFormat.HTML:
        content = _render_html(score)
    else:
        content = score.model_dump_json(indent=2)

    logger.info(
        f"Exported element {element_id} evidence as {fmt.value}",
        extra={"company_id": company_id, "element_id": element_id, "format": fmt.value},
    )
    return content, MEDIA_TYPES[fmt]
