"""
Evidence Finder

Assembles the evidence an audit element is scored on. Each element is
described by an ElementPolicy: a list of SubRequirements, each holding
declarative MatchRules that decide which maintenance records, finished work
orders, receipts and active schedules support it.

Evidence is read from the record store on every call and never cached, so a
record written a moment ago is already reflected.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from sqlalchemy import false, func, or_, select
from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.core.status_config import FINISHED_WORK_ORDER_STATUSES
from app.exceptions import NotFoundError
from app.logging_config import get_logger
from app.models.equipment import EquipmentUnit
from app.models.maintenance import MaintenanceReceipt, MaintenanceRecord, MaintenanceSchedule
from app.models.work_order import WorkOrder
from app.schemas.compliance import (
    EquipmentEvidenceStats,
    EvidenceBucket,
    EvidenceBundle,
    EvidenceItem,
)
from app.schemas.maintenance import ScheduleStatus
from app.services.cost_service import equipment_costs
from app.services.downtime_service import compute_availability, events_in_window
from app.services.record_service import superseded_record_ids
from app.services.schedule_engine import evaluate

logger = get_logger(__name__)

RECORD = "record"
WORK_ORDER = "work_order"
RECEIPT = "receipt"
SCHEDULE = "schedule"


# ============================================================================
# Policy
# ============================================================================

@dataclass(frozen=True)
class MatchRule:
    """
    One way an item can support a sub-requirement.

    counts=False cites the item for context (it shows up in the bucket and
    can trigger the overdue regulatory cap) without adding to the count.
    current selects records whose certification is (or is not) unexpired at
    as_of; on_time selects schedules that are (or are not) overdue.
    """
    source: str
    maintenance_types: Optional[FrozenSet[str]] = None
    certification_only: bool = False
    regulatory_only: bool = False
    counts: bool = True
    current: Optional[bool] = None
    on_time: Optional[bool] = None

    def matches(self, candidate: "EvidenceCandidate") -> bool:
        if candidate.source != self.source:
            return False
        if self.maintenance_types is not None and candidate.maintenance_type not in self.maintenance_types:
            return False
        if self.certification_only and not candidate.is_certification:
            return False
        if self.regulatory_only and not candidate.is_regulatory:
            return False
        if self.current is not None and candidate.is_current != self.current:
            return False
        if self.on_time is not None and candidate.overdue == self.on_time:
            return False
        return True


@dataclass(frozen=True)
class SubRequirement:
    """
    One scored line item of an element.

    required_count is None for presence-only requirements. With
    per_equipment it is multiplied by the number of units in scope.
    count_by="equipment" counts units with evidence rather than items.
    count_by="certifications" counts the certifications units declare in
    certifications_required that a counted record covers; with none
    declared it falls back to counting items against required_count.
    share=True scores the counted fraction of every matched item.
    Counting rules within one sub-requirement must not overlap.
    """
    id: str
    name: str
    weight: float
    rules: Tuple[MatchRule, ...]
    missing_evidence: str
    required_count: Optional[int] = None
    per_equipment: bool = False
    count_by: str = "items"
    share: bool = False

    def required_total(self, equipment_count: int, population: Optional[int] = None) -> Optional[int]:
        """population is the bucket's share or declared-certification denominator."""
        if self.share:
            return population or 0
        if self.count_by == "certifications" and population:
            return population
        if self.required_count is None:
            return None
        if self.per_equipment:
            return self.required_count * equipment_count
        return self.required_count

    @property
    def evaluates_schedules(self) -> bool:
        """Whether counting needs each schedule's evaluated status."""
        return any(rule.on_time is not None for rule in self.rules)

    def counts(self, candidate: "EvidenceCandidate") -> Optional[bool]:
        """None when no rule matches, else whether the item adds to the count."""
        matched = [rule for rule in self.rules if rule.matches(candidate)]
        if not matched:
            return None
        return any(rule.counts for rule in matched)


@dataclass(frozen=True)
class ElementPolicy:
    element_id: int
    name: str
    sub_requirements: Tuple[SubRequirement, ...]
    # "weighted" (by SubRequirement.weight) or "equal"
    weighting: str = "weighted"


INSPECTION_TYPES = frozenset({
    "inspection_daily",
    "inspection_weekly",
    "inspection_monthly",
    "inspection_annual",
    "load_test",
})

ELEMENT_7 = ElementPolicy(
    element_id=7,
    name="Preventive Maintenance & Inspection",
    sub_requirements=(
        SubRequirement(
            id="elem7_schedules",
            name="Maintenance Schedules Exist",
            weight=20,
            rules=(MatchRule(SCHEDULE),),
            required_count=1,
            per_equipment=True,
            count_by="equipment",
            missing_evidence="Active maintenance schedule for every equipment unit",
        ),
        SubRequirement(
            id="elem7_preventive",
            name="Preventive Maintenance Performed",
            weight=30,
            rules=(
                MatchRule(RECORD, frozenset({"preventive"})),
                MatchRule(WORK_ORDER, frozenset({"preventive"})),
                MatchRule(SCHEDULE, frozenset({"preventive"}), counts=False),
            ),
            required_count=4,
            per_equipment=True,
            missing_evidence="Preventive maintenance records, at least quarterly per unit",
        ),
        SubRequirement(
            id="elem7_inspections",
            name="Inspections Documented",
            weight=15,
            rules=(
                MatchRule(RECORD, INSPECTION_TYPES),
                MatchRule(WORK_ORDER, INSPECTION_TYPES),
                MatchRule(SCHEDULE, frozenset({"inspection"}), counts=False),
            ),
            required_count=1,
            per_equipment=True,
            missing_evidence="Inspection or load test record for every unit",
        ),
        SubRequirement(
            id="elem7_documentation",
            name="Records & Documentation",
            weight=20,
            rules=(MatchRule(RECEIPT),),
            required_count=2,
            per_equipment=True,
            missing_evidence="Maintenance receipts or service invoices, two per unit",
        ),
        SubRequirement(
            id="elem7_certifications",
            name="Certifications Current",
            weight=15,
            rules=(
                MatchRule(RECORD, certification_only=True, current=True),
                MatchRule(RECORD, certification_only=True, current=False, counts=False),
                MatchRule(SCHEDULE, frozenset({"certification"}), counts=False),
                MatchRule(SCHEDULE, regulatory_only=True, counts=False),
            ),
            required_count=1,
            count_by="certifications",
            missing_evidence="Unexpired certification record for every required certification",
        ),
        SubRequirement(
            id="elem7_compliance",
            name="Schedule Compliance",
            weight=30,
            rules=(
                MatchRule(SCHEDULE, on_time=True),
                MatchRule(SCHEDULE, on_time=False, counts=False),
            ),
            share=True,
            missing_evidence="Overdue maintenance schedules brought back on time",
        ),
    ),
)

ELEMENT_POLICIES: Dict[int, ElementPolicy] = {
    ELEMENT_7.element_id: ELEMENT_7,
}


def get_element_policy(element_id: int) -> ElementPolicy:
    policy = ELEMENT_POLICIES.get(element_id)
    if policy is None:
        raise NotFoundError("Audit element", element_id)
    return policy


# ============================================================================
# Candidates
# ============================================================================

@dataclass
class EvidenceCandidate:
    """An item under consideration, with the attributes rules match on."""
    source: str
    id: int
    equipment_id: int
    equipment_code: str
    evidence_date: date
    title: str
    maintenance_type: Optional[str] = None
    is_certification: bool = False
    certification_type: Optional[str] = None
    is_current: bool = False
    is_regulatory: bool = False
    overdue: bool = False

    def to_item(self, counts: bool) -> EvidenceItem:
        return EvidenceItem(
            source=self.source,
            id=self.id,
            equipment_id=self.equipment_id,
            equipment_code=self.equipment_code,
            evidence_date=self.evidence_date,
            title=self.title,
            maintenance_type=self.maintenance_type,
            certification_type=self.certification_type,
            counts=counts,
            is_regulatory=self.is_regulatory,
            overdue=self.overdue,
        )


def _sort_key(item):
    return (item.evidence_date, item.source, item.id)


def certification_key(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    return value.strip().lower()


def declared_certifications(units) -> Set[Tuple[int, str]]:
    """(equipment_id, certification) pairs the units list in certifications_required."""
    declared = set()
    for unit in units:
        for name in unit.certifications_required or []:
            key = certification_key(name)
            if key:
                declared.add((unit.id, key))
    return declared


def covered_certifications(pairs) -> Set[Tuple[int, str]]:
    """Normalize (equipment_id, certification_type) pairs of counted records."""
    return {
        (equipment_id, certification_key(name))
        for equipment_id, name in pairs
        if certification_key(name)
    }


def tally(sub: SubRequirement, counted: Sequence, declared: Set[Tuple[int, str]]) -> int:
    """Evidence count of a sub-requirement from its counted items."""
    if sub.count_by == "equipment":
        return len({item.equipment_id for item in counted})
    if sub.count_by == "certifications" and declared:
        pairs = [(item.equipment_id, item.certification_type) for item in counted]
        return len(covered_certifications(pairs) & declared)
    return len(counted)


def population_of(sub: SubRequirement, items: Sequence, declared: Set[Tuple[int, str]]) -> int:
    if sub.share:
        return len(items)
    if sub.count_by == "certifications":
        return len(declared)
    return 0


@dataclass
class EvidenceScope:
    company_id: int
    as_of: date
    lookback_start: date
    equipment: List[EquipmentUnit]

    @property
    def equipment_ids(self) -> List[int]:
        return [unit.id for unit in self.equipment]

    @property
    def codes(self) -> Dict[int, str]:
        return {unit.id: unit.equipment_code for unit in self.equipment}


def resolve_scope(
    db: Session,
    company_id: int,
    equipment_ids: Optional[Sequence[int]] = None,
    as_of: Optional[date] = None,
) -> EvidenceScope:
    """Non-retired equipment in the tenant, optionally narrowed to equipment_ids."""
    as_of = as_of or date.today()
    query = db.query(EquipmentUnit).filter(
        EquipmentUnit.company_id == company_id,
        EquipmentUnit.status != "retired",
    )
    if equipment_ids is not None:
        query = query.filter(EquipmentUnit.id.in_(list(equipment_ids)))
    lookback_days = get_settings().EVIDENCE_LOOKBACK_DAYS
    return EvidenceScope(
        company_id=company_id,
        as_of=as_of,
        lookback_start=as_of - timedelta(days=lookback_days),
        equipment=query.order_by(EquipmentUnit.id).all(),
    )


def _regulatory_schedule_ids(company_id: int):
    return select(MaintenanceSchedule.id).where(
        MaintenanceSchedule.company_id == company_id,
        MaintenanceSchedule.is_regulatory_requirement.is_(True),
    )


def _documented_work_order_ids(company_id: int):
    """Work orders a maintenance record already cites; the record is the evidence."""
    return select(MaintenanceRecord.work_order_id).where(
        MaintenanceRecord.company_id == company_id,
        MaintenanceRecord.work_order_id.isnot(None),
    )


def _source_criteria(source: str, scope: EvidenceScope):
    """(model, criteria) selecting every in-scope item of a source."""
    ids = scope.equipment_ids
    company_id = scope.company_id
    if source == RECORD:
        return MaintenanceRecord, [
            MaintenanceRecord.company_id == company_id,
            MaintenanceRecord.equipment_id.in_(ids),
            MaintenanceRecord.performed_at >= scope.lookback_start,
            MaintenanceRecord.performed_at <= scope.as_of,
            MaintenanceRecord.id.notin_(superseded_record_ids(company_id)),
        ]
    if source == WORK_ORDER:
        window_end = datetime.combine(scope.as_of + timedelta(days=1), time.min)
        return WorkOrder, [
            WorkOrder.company_id == company_id,
            WorkOrder.equipment_id.in_(ids),
            WorkOrder.status.in_(sorted(FINISHED_WORK_ORDER_STATUSES)),
            WorkOrder.completed_at >= datetime.combine(scope.lookback_start, time.min),
            WorkOrder.completed_at < window_end,
            WorkOrder.id.notin_(_documented_work_order_ids(company_id)),
        ]
    if source == RECEIPT:
        return MaintenanceReceipt, [
            MaintenanceReceipt.company_id == company_id,
            MaintenanceReceipt.equipment_id.in_(ids),
            MaintenanceReceipt.receipt_date >= scope.lookback_start,
            MaintenanceReceipt.receipt_date <= scope.as_of,
        ]
    if source == SCHEDULE:
        return MaintenanceSchedule, [
            MaintenanceSchedule.company_id == company_id,
            MaintenanceSchedule.equipment_id.in_(ids),
            MaintenanceSchedule.is_active.is_(True),
        ]
    raise ValueError(f"Unknown evidence source '{source}'")


def rule_criteria(rule: MatchRule, scope: EvidenceScope):
    """SQL equivalent of MatchRule.matches over the in-scope rows of its source."""
    model, criteria = _source_criteria(rule.source, scope)
    if rule.maintenance_types is not None:
        if model is MaintenanceRecord:
            type_column = MaintenanceRecord.record_type
        elif model is MaintenanceReceipt:
            type_column = MaintenanceReceipt.expense_category
        else:
            type_column = model.maintenance_type
        criteria.append(type_column.in_(sorted(rule.maintenance_types)))
    if rule.certification_only:
        if model is not MaintenanceRecord:
            criteria.append(false())
        else:
            criteria.append(MaintenanceRecord.is_certification_record.is_(True))
    if rule.regulatory_only:
        if model is MaintenanceSchedule:
            criteria.append(MaintenanceSchedule.is_regulatory_requirement.is_(True))
        elif model is MaintenanceReceipt:
            criteria.append(false())
        else:
            criteria.append(model.schedule_id.in_(_regulatory_schedule_ids(scope.company_id)))
    if rule.current is not None:
        if model is not MaintenanceRecord:
            criteria.append(false())
        elif rule.current:
            criteria.append(MaintenanceRecord.certification_expiry >= scope.as_of)
        else:
            criteria.append(or_(
                MaintenanceRecord.certification_expiry.is_(None),
                MaintenanceRecord.certification_expiry < scope.as_of,
            ))
    # on_time needs evaluate(), so count_evidence checks those schedules in Python
    if rule.on_time is not None and model is not MaintenanceSchedule:
        criteria.append(false())
    return model, criteria


def schedule_candidate(schedule: MaintenanceSchedule, equipment: EquipmentUnit, as_of: date) -> EvidenceCandidate:
    evaluation = evaluate(schedule, as_of, equipment.current_usage_hours)
    return EvidenceCandidate(
        source=SCHEDULE,
        id=schedule.id,
        equipment_id=equipment.id,
        equipment_code=equipment.equipment_code,
        evidence_date=schedule.last_completed_at or schedule.created_at.date(),
        title=schedule.name,
        maintenance_type=schedule.maintenance_type,
        is_regulatory=bool(schedule.is_regulatory_requirement),
        overdue=evaluation.status == ScheduleStatus.OVERDUE,
    )


def collect_candidates(db: Session, scope: EvidenceScope) -> List[EvidenceCandidate]:
    """Every in-scope item of every source."""
    if not scope.equipment:
        return []
    codes = scope.codes
    regulatory = {
        row[0]
        for row in db.execute(_regulatory_schedule_ids(scope.company_id))
    }
    candidates: List[EvidenceCandidate] = []

    model, criteria = _source_criteria(RECORD, scope)
    for record in db.query(model).filter(*criteria).all():
        candidates.append(EvidenceCandidate(
            source=RECORD,
            id=record.id,
            equipment_id=record.equipment_id,
            equipment_code=codes[record.equipment_id],
            evidence_date=record.performed_at,
            title=record.title,
            maintenance_type=record.record_type,
            is_certification=bool(record.is_certification_record),
            certification_type=record.certification_type,
            is_current=record.certification_expiry is not None and record.certification_expiry >= scope.as_of,
            is_regulatory=record.schedule_id in regulatory,
        ))

    model, criteria = _source_criteria(WORK_ORDER, scope)
    for order in db.query(model).filter(*criteria).all():
        candidates.append(EvidenceCandidate(
            source=WORK_ORDER,
            id=order.id,
            equipment_id=order.equipment_id,
            equipment_code=codes[order.equipment_id],
            evidence_date=order.completed_at.date(),
            title=f"{order.work_order_number}: {order.title}",
            maintenance_type=order.maintenance_type,
            is_regulatory=order.schedule_id in regulatory,
        ))

    model, criteria = _source_criteria(RECEIPT, scope)
    for receipt in db.query(model).filter(*criteria).all():
        candidates.append(EvidenceCandidate(
            source=RECEIPT,
            id=receipt.id,
            equipment_id=receipt.equipment_id,
            equipment_code=codes[receipt.equipment_id],
            evidence_date=receipt.receipt_date,
            title=f"Receipt from {receipt.vendor_name}" if receipt.vendor_name else "Receipt",
            maintenance_type=receipt.expense_category,
        ))

    candidates.extend(_schedule_candidates(db, scope))
    return candidates


def _schedule_candidates(db: Session, scope: EvidenceScope) -> List[EvidenceCandidate]:
    """Active in-scope schedules, each evaluated at as_of."""
    units = {unit.id: unit for unit in scope.equipment}
    model, criteria = _source_criteria(SCHEDULE, scope)
    return [
        schedule_candidate(schedule, units[schedule.equipment_id], scope.as_of)
        for schedule in db.query(model).filter(*criteria).all()
    ]


def classify(
    policy: ElementPolicy,
    candidates: List[EvidenceCandidate],
    declared: Optional[Set[Tuple[int, str]]] = None,
) -> Tuple[List[EvidenceBucket], List[EvidenceItem]]:
    """
    Sort candidates into one bucket per sub-requirement. An item may support
    several sub-requirements; items that support none are unclassified.
    declared holds the certifications the units in scope must carry.
    """
    declared = declared or set()
    buckets = []
    classified: Set[Tuple[str, int]] = set()
    for sub in policy.sub_requirements:
        items = []
        for candidate in candidates:
            counts = sub.counts(candidate)
            if counts is None:
                continue
            classified.add((candidate.source, candidate.id))
            items.append(candidate.to_item(counts))
        items.sort(key=_sort_key, reverse=True)
        counted = [item for item in items if item.counts]
        buckets.append(EvidenceBucket(
            sub_requirement_id=sub.id,
            name=sub.name,
            items=items,
            evidence_count=tally(sub, counted, declared),
            population=population_of(sub, items, declared),
            overdue_regulatory=any(
                item.source == SCHEDULE and item.is_regulatory and item.overdue for item in items
            ),
        ))

    unclassified = [
        candidate.to_item(False)
        for candidate in candidates
        if (candidate.source, candidate.id) not in classified
    ]
    unclassified.sort(key=_sort_key, reverse=True)
    return buckets, unclassified


def _equipment_stats(db: Session, scope: EvidenceScope) -> List[EquipmentEvidenceStats]:
    # The window closes at the end of as_of so repeated calls agree
    window_start = datetime.combine(scope.lookback_start, time.min)
    window_end = datetime.combine(scope.as_of + timedelta(days=1), time.min)
    stats = []
    for unit in scope.equipment:
        events = events_in_window(db, scope.company_id, unit.id, window_start, window_end)
        stats.append(EquipmentEvidenceStats(
            equipment_id=unit.id,
            equipment_code=unit.equipment_code,
            availability=compute_availability(events, window_start, window_end, now=window_end),
            costs=equipment_costs(db, scope.company_id, unit.id, scope.lookback_start, scope.as_of),
        ))
    return stats


def find_evidence(
    db: Session,
    company_id: int,
    element_id: int,
    equipment_ids: Optional[Sequence[int]] = None,
    as_of: Optional[date] = None,
    include_stats: bool = True,
) -> EvidenceBundle:
    """
    Build the evidence bundle for one element.

    Scope is the tenant's non-retired equipment. Dated evidence counts when
    it falls within EVIDENCE_LOOKBACK_DAYS before as_of. Records replaced by
    a correction and work orders already cited through a record are left
    out. A sub-requirement with no evidence gets an empty bucket.

    Raises:
        NotFoundError: unknown element_id
    """
    policy = get_element_policy(element_id)
    scope = resolve_scope(db, company_id, equipment_ids, as_of)
    candidates = collect_candidates(db, scope)
    buckets, unclassified = classify(policy, candidates, declared_certifications(scope.equipment))

    bundle = EvidenceBundle(
        company_id=company_id,
        element_id=policy.element_id,
        element_name=policy.name,
        as_of=scope.as_of,
        lookback_start=scope.lookback_start,
        equipment_ids=scope.equipment_ids,
        buckets=buckets,
        unclassified=unclassified,
        equipment_stats=_equipment_stats(db, scope) if include_stats else [],
    )
    logger.info(
        f"Evidence assembled for element {element_id}",
        extra={
            "company_id": company_id,
            "element_id": element_id,
            "equipment_count": len(scope.equipment),
            "candidates": len(candidates),
            "unclassified": len(unclassified),
        },
    )
    return bundle


# ============================================================================
# SQL counts (quick mode)
# ============================================================================

def count_evidence(db: Session, policy: ElementPolicy, scope: EvidenceScope) -> Dict[str, Tuple[int, int]]:
    """
    Per sub-requirement (evidence count, population) computed in SQL,
    without loading the evidence rows. Schedule status is not a column, so
    sub-requirements that match on it evaluate the in-scope schedules.
    Agrees with the counts classify() produces.
    """
    counts: Dict[str, Tuple[int, int]] = {}
    declared = declared_certifications(scope.equipment)
    schedules: Optional[List[EvidenceCandidate]] = None
    for sub in policy.sub_requirements:
        if not scope.equipment:
            counts[sub.id] = (0, 0)
            continue
        counting_rules = [rule for rule in sub.rules if rule.counts]
        if sub.evaluates_schedules:
            if schedules is None:
                schedules = _schedule_candidates(db, scope)
            matched = [candidate for candidate in schedules if sub.counts(candidate) is not None]
            counted = [candidate for candidate in matched if sub.counts(candidate)]
            counts[sub.id] = (tally(sub, counted, declared), population_of(sub, matched, declared))
        elif sub.count_by == "equipment":
            units: Set[int] = set()
            for rule in counting_rules:
                model, criteria = rule_criteria(rule, scope)
                units.update(row[0] for row in db.query(model.equipment_id).filter(*criteria).distinct())
            counts[sub.id] = (len(units), 0)
        elif sub.count_by == "certifications" and declared:
            pairs = []
            for rule in counting_rules:
                model, criteria = rule_criteria(rule, scope)
                if model is MaintenanceRecord:
                    pairs.extend(db.query(model.equipment_id, model.certification_type).filter(*criteria).all())
            counts[sub.id] = (len(covered_certifications(pairs) & declared), len(declared))
        else:
            total = 0
            for rule in counting_rules:
                model, criteria = rule_criteria(rule, scope)
                total += db.query(func.count(model.id)).filter(*criteria).scalar() or 0
            counts[sub.id] = (total, 0)
    return counts


def overdue_regulatory_flags(db: Session, policy: ElementPolicy, scope: EvidenceScope) -> Dict[str, bool]:
    """Which sub-requirements cite an overdue regulatory schedule."""
    flags = {sub.id: False for sub in policy.sub_requirements}
    if not scope.equipment:
        return flags
    units = {unit.id: unit for unit in scope.equipment}
    model, criteria = _source_criteria(SCHEDULE, scope)
    criteria.append(MaintenanceSchedule.is_regulatory_requirement.is_(True))
    for schedule in db.query(model).filter(*criteria).all():
        candidate = schedule_candidate(schedule, units[schedule.equipment_id], scope.as_of)
        if not candidate.overdue:
            continue
        for sub in policy.sub_requirements:
            if sub.counts(candidate) is not None:
                flags[sub.id] = True
    return flags
