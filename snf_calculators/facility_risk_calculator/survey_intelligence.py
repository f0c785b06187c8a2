"""Facility-level survey intelligence.

Blends lagging indicators (SFF status, health inspection stars, prior harm and
IJ citations, fines) with a leading indicator (the occupancy/resource
quadrant) into a survey risk score, and derives operational metric statuses,
alert flags, prioritized recommendations, chain context and the external vs
internal gap status.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, Field

from snf_calculators.facility_risk_calculator.record_processing import (
    parse_flag,
    parse_float,
    round_half_up,
)


class MetricStatus(str, Enum):
    critical = "CRITICAL"
    warning = "WARNING"
    target = "TARGET"
    excellent = "EXCELLENT"
    unknown = "UNKNOWN"


class Quadrant(str, Enum):
    overextended = "Overextended"
    high_performing = "High Performing"
    struggling = "Struggling"
    comfortable = "Comfortable"


class MetricThresholds(BaseModel):
    critical: float
    warning: float
    target: float
    excellent: float


THRESHOLDS = {
    "turnover": MetricThresholds(critical=60, warning=50, target=40, excellent=30),
    "rn_skill_mix": MetricThresholds(critical=0.15, warning=0.20, target=0.25, excellent=0.30),
    "rn_hours": MetricThresholds(critical=0.40, warning=0.50, target=0.50, excellent=0.75),
    "weekend_gap": MetricThresholds(critical=0.30, warning=0.20, target=0.20, excellent=0.10),
    "occupancy": MetricThresholds(critical=0.50, warning=0.60, target=0.70, excellent=0.80),
}

# Lagging component
SFF_POINTS = 30
HEALTH_STAR_MULTIPLIER = 10
PREV_HARM_POINTS_PER = 5
PREV_HARM_CAP = 20
FINE_POINTS_PER = 3
FINE_CAP = 15
PREV_IJ_POINTS = 10

LAGGING_WEIGHT = 0.70
LEADING_WEIGHT = 0.30

QUADRANT_POINTS = {
    Quadrant.struggling: 30,
    Quadrant.overextended: 20,
    Quadrant.comfortable: 5,
    Quadrant.high_performing: 0,
}

# (minimum score, tier), checked top-down
SURVEY_RISK_TIERS = ((75, "Critical"), (55, "High"), (35, "Moderate"))
AUDIT_TIERS = ((90, "Excellent"), (75, "Good"), (60, "Fair"), (40, "Poor"))

HIGH_OCCUPANCY = 80
HIGH_RESOURCE = 50
DEFAULT_STAR_RATING = 3
DEFAULT_PERCENTILE = 50
DEFAULT_OCCUPANCY = 75

GAP_SURVEY_RISK_THRESHOLD = 55
GAP_AUDIT_THRESHOLD = 70


class MetricReading(BaseModel):
    value: float | None = None
    status: MetricStatus | None = None
    target: str


class OperationalMetrics(BaseModel):
    """Operational metrics with status. Ratios (skill mix, weekend gap) are fractions."""

    turnover: MetricReading
    rn_skill_mix: MetricReading
    rn_hours: MetricReading
    weekend_gap: MetricReading
    occupancy: MetricReading


class AlertFlag(BaseModel):
    name: str
    severity: str
    impact: str
    message: str


class Recommendation(BaseModel):
    priority: int
    area: str
    current: str
    target: str
    impact: str
    action: str
    evidence: str


class FocusArea(BaseModel):
    system_name: str
    system_score: float


class SurveyRisk(BaseModel):
    score: int = Field(..., ge=0, le=100)
    tier: str
    lagging_component: int
    leading_component: int


class ChainContext(BaseModel):
    chain_name: str | None = None
    is_independent: bool = False
    chain_facility_count: int | None = None
    chain_avg_qm: float | None = None
    chain_rank: int | None = None
    chain_percentile: float | None = None
    facility_qm: float | None = None
    vs_chain: float | None = None
    vs_chain_status: str | None = None
    best_in_chain: Any = None
    insight: str


class FacilityGap(BaseModel):
    status: str
    insight: str
    survey_risk_score: int | None = None
    audit_score: float | None = None


class SurveyIntelligence(BaseModel):
    """Complete survey intelligence for one facility."""

    facility_id: str | None = None
    federal_provider_number: str | None = None
    survey_risk: SurveyRisk
    focus_areas: list[dict[str, Any]] = Field(default_factory=list)
    audit_score: dict[str, Any] | None = None
    resource_score: float
    capacity_strain: float
    quadrant: Quadrant
    metrics: OperationalMetrics
    alert_flags: list[AlertFlag] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    chain_context: ChainContext
    gap_analysis: FacilityGap
    calculated_at: datetime
    cms_data_as_of: str | None = None


def _first_number(*values: Any, default: float | None = None) -> float | None:
    """First value that parses to a non-zero number, else ``default``."""
    for value in values:
        number = parse_float(value)
        if number:
            return number
    return default


def metric_status(value: float | None, metric: str, inverse: bool = False) -> MetricStatus | None:
    """Status of a metric against its thresholds; ``inverse`` when higher is worse."""
    if value is None:
        return None
    thresholds = THRESHOLDS.get(metric)
    if thresholds is None:
        return MetricStatus.unknown

    if inverse:
        if value >= thresholds.critical:
            return MetricStatus.critical
        if value >= thresholds.warning:
            return MetricStatus.warning
        if value >= thresholds.target:
            return MetricStatus.target
        return MetricStatus.excellent

    if value < thresholds.critical:
        return MetricStatus.critical
    if value < thresholds.warning:
        return MetricStatus.warning
    if value < thresholds.target:
        return MetricStatus.target
    return MetricStatus.excellent


def _tier(score: float, tiers: tuple[tuple[int, str], ...], floor_label: str) -> str:
    for minimum, label in tiers:
        if score >= minimum:
            return label
    return floor_label


def survey_risk_tier(score: float) -> str:
    return _tier(score, SURVEY_RISK_TIERS, "Low")


def audit_tier(score: float) -> str:
    return _tier(score, AUDIT_TIERS, "Critical")


def quadrant_for(occupancy: float, resource_score: float) -> Quadrant:
    high_occupancy = occupancy >= HIGH_OCCUPANCY
    high_resource = resource_score >= HIGH_RESOURCE
    if high_occupancy and not high_resource:
        return Quadrant.overextended
    if high_occupancy:
        return Quadrant.high_performing
    if not high_resource:
        return Quadrant.struggling
    return Quadrant.comfortable


def resource_score(facility: Mapping[str, Any], percentiles: Mapping[str, Any]) -> float:
    """0-100 resource score from star ratings and staffing percentiles."""
    staffing_star = _first_number(facility.get("staffing_rating"), default=DEFAULT_STAR_RATING)
    qm_star = _first_number(facility.get("qm_rating"), default=DEFAULT_STAR_RATING)
    rn_hours_pctl = _first_number(percentiles.get("rn_hours_pctl"), default=DEFAULT_PERCENTILE)
    turnover_pctl = _first_number(percentiles.get("turnover_pctl"), default=DEFAULT_PERCENTILE)

    return (
        staffing_star / 5 * 100 * 0.35
        + qm_star / 5 * 100 * 0.35
        + rn_hours_pctl * 0.20
        + (100 - turnover_pctl) * 0.10
    )


def capacity_strain(occupancy: float, resource: float) -> float:
    return occupancy * (100 - resource) / 100


def survey_risk(
    facility: Mapping[str, Any],
    quadrant: Quadrant,
    cms_data: Mapping[str, Any] | None = None,
) -> SurveyRisk:
    """Survey risk: 70% lagging indicators + 30% quadrant, capped at 100."""
    cms_data = cms_data or {}
    lagging = 0.0

    if parse_flag(facility.get("is_sff")) or parse_flag(cms_data.get("special_focus_facility")):
        lagging += SFF_POINTS

    health_star = _first_number(
        cms_data.get("health_inspection_rating"),
        facility.get("health_inspection_rating"),
        default=DEFAULT_STAR_RATING,
    )
    lagging += (5 - health_star) * HEALTH_STAR_MULTIPLIER

    prev_harm = parse_float(cms_data.get("prev_harm_count")) or 0
    lagging += min(prev_harm * PREV_HARM_POINTS_PER, PREV_HARM_CAP)

    fine_count = parse_float(cms_data.get("fine_count")) or 0
    lagging += min(fine_count * FINE_POINTS_PER, FINE_CAP)

    if parse_flag(cms_data.get("had_ij_last_survey")):
        lagging += PREV_IJ_POINTS

    leading = QUADRANT_POINTS[quadrant]
    total = min(int(round_half_up(lagging * LAGGING_WEIGHT + leading * LEADING_WEIGHT)), 100)
    total = max(total, 0)

    return SurveyRisk(
        score=total,
        tier=survey_risk_tier(total),
        lagging_component=int(round_half_up(lagging)),
        leading_component=leading,
    )


def operational_metrics(
    facility: Mapping[str, Any], cms_data: Mapping[str, Any] | None = None
) -> OperationalMetrics:
    cms_data = cms_data or {}

    turnover = _first_number(cms_data.get("total_nursing_turnover"), facility.get("nursing_turnover"))
    rn_hours = _first_number(cms_data.get("rn_staffing_hours"), facility.get("rn_hours"))
    total_hours = _first_number(
        cms_data.get("total_nurse_staffing_hours"), facility.get("total_nursing_hours")
    )
    rn_skill_mix = rn_hours / total_hours if rn_hours and total_hours and total_hours > 0 else None

    weekend_hours = parse_float(cms_data.get("weekend_total_nurse_hours")) or 0
    weekend_gap = None
    if total_hours and total_hours > 0 and weekend_hours > 0:
        weekend_gap = max(0.0, (total_hours - weekend_hours) / total_hours)

    occupancy = _first_number(cms_data.get("occupancy_rate"), facility.get("occupancy_rate"))

    return OperationalMetrics(
        turnover=MetricReading(
            value=turnover, status=metric_status(turnover, "turnover", inverse=True), target="<40%"
        ),
        rn_skill_mix=MetricReading(
            value=rn_skill_mix, status=metric_status(rn_skill_mix, "rn_skill_mix"), target="30%+"
        ),
        rn_hours=MetricReading(
            value=rn_hours, status=metric_status(rn_hours, "rn_hours"), target="0.50-0.75"
        ),
        weekend_gap=MetricReading(
            value=weekend_gap,
            status=metric_status(weekend_gap, "weekend_gap", inverse=True),
            target="<20%",
        ),
        occupancy=MetricReading(
            value=occupancy,
            status=metric_status(occupancy / 100 if occupancy is not None else None, "occupancy"),
            target="80-90%",
        ),
    )


def alert_flags(
    metrics: OperationalMetrics,
    quadrant: Quadrant,
    cms_data: Mapping[str, Any] | None = None,
) -> list[AlertFlag]:
    """Flags for known high-risk combinations. Missing metrics never raise a flag."""
    cms_data = cms_data or {}
    flags: list[AlertFlag] = []

    turnover = metrics.turnover.value
    rn_hours = metrics.rn_hours.value
    if turnover is not None and rn_hours is not None and turnover > 50 and rn_hours < 0.40:
        flags.append(AlertFlag(
            name="DOUBLE_TROUBLE",
            severity="CRITICAL",
            impact="-0.39 QM stars on average",
            message="High turnover combined with low RN staffing is the highest-risk combination",
        ))

    if quadrant == Quadrant.struggling:
        flags.append(AlertFlag(
            name="DEATH_SPIRAL_RISK",
            severity="CRITICAL",
            impact="65% bad outcome rate",
            message="Low occupancy + low resources indicates potential financial/operational spiral",
        ))

    weekend_gap = metrics.weekend_gap.value
    if weekend_gap is not None and weekend_gap > 0.25:
        flags.append(AlertFlag(
            name="WEEKEND_VULNERABILITY",
            severity="WARNING",
            impact="-0.34 QM stars",
            message="Significant weekend staffing reduction creates risk window",
        ))

    if parse_flag(cms_data.get("has_abuse_citations")):
        flags.append(AlertFlag(
            name="ABUSE_HISTORY",
            severity="WARNING",
            impact="-0.26 QM stars",
            message="History of abuse citations indicates culture concerns",
        ))

    return flags


def _pct(fraction: float) -> str:
    return f"{fraction * 100:.1f}%"


def recommendations(
    metrics: OperationalMetrics,
    focus_areas: list[FocusArea] | None = None,
    flags: list[AlertFlag] | None = None,
) -> list[Recommendation]:
    """Prioritized recommendations; priorities are consecutive from 1."""
    focus_areas = focus_areas or []
    flags = flags or []
    found: list[dict[str, str]] = []

    turnover = metrics.turnover.value
    rn_hours = metrics.rn_hours.value
    skill_mix = metrics.rn_skill_mix.value
    weekend_gap = metrics.weekend_gap.value
    double_trouble = any(f.name == "DOUBLE_TROUBLE" for f in flags)

    if double_trouble:
        found.append(dict(
            area="Staffing Crisis",
            current=f"Turnover: {turnover:g}%, RN Hours: {rn_hours:g}",
            target="Turnover <40%, RN Hours >0.50",
            impact="+0.39 QM stars expected when resolved",
            action="Immediate retention and recruitment intervention required. Address root "
                   "causes of turnover while temporarily increasing agency staff to meet RN hours.",
            evidence="Double Trouble combination validated as highest-risk on 14,000+ facilities",
        ))

    if turnover is not None and turnover > 50 and not double_trouble:
        found.append(dict(
            area="Turnover",
            current=f"{turnover:g}%",
            target="<40%",
            impact="+0.35 QM stars expected",
            action="Implement retention initiatives: exit interviews, compensation review, "
                   "scheduling flexibility, career development paths",
            evidence="Facilities with <40% turnover are 1.49x more likely to achieve 4-5 star ratings",
        ))

    if skill_mix is not None and skill_mix < 0.25:
        found.append(dict(
            area="RN Skill Mix",
            current=_pct(skill_mix),
            target="30%+",
            impact="+0.28 QM stars expected",
            action="Increase RN proportion of nursing staff. Consider RN-to-resident ratios for "
                   "clinical leadership coverage.",
            evidence="Facilities with >30% RN skill mix are 1.31x more likely to achieve high QM ratings",
        ))

    if rn_hours is not None and rn_hours < 0.50 and not double_trouble:
        found.append(dict(
            area="RN Hours",
            current=f"{rn_hours:g} HPRD",
            target="0.50-0.75 HPRD",
            impact="+0.20 QM stars expected",
            action="Increase RN staffing hours per resident day. Prioritize during high-acuity shifts.",
            evidence="Each +0.1 RN HPRD increases QM star by ~0.08. Top quartile facilities "
                     "average 0.75+ HPRD.",
        ))

    if focus_areas and focus_areas[0].system_score >= 60:
        top = focus_areas[0]
        found.append(dict(
            area=f"Focus Area: {top.system_name}",
            current=f"Score: {top.system_score:g}",
            target="Score <50",
            impact="Reduces IJ/Harm probability on next survey",
            action=f"Review {top.system_name} protocols, conduct targeted training, implement "
                   "monitoring checklists",
            evidence="Focus Areas analysis validated with 1.91x lift in identifying bad outcomes",
        ))

    if weekend_gap is not None and weekend_gap > 0.20:
        found.append(dict(
            area="Weekend Staffing",
            current=f"{_pct(weekend_gap)} gap",
            target="<20% gap",
            impact="+0.15 QM stars expected",
            action="Reduce weekend staffing differential. Implement weekend incentives or "
                   "rotational coverage.",
            evidence="Weekend gaps >20% indicate process inconsistency and correlate with lower "
                     "QM scores",
        ))

    return [Recommendation(priority=i, **rec) for i, rec in enumerate(found, start=1)]


def chain_context(
    facility: Mapping[str, Any], chain_data: Mapping[str, Any] | None = None
) -> ChainContext:
    """Facility QM stars against its chain's average."""
    chain_data = chain_data or {}
    if not chain_data.get("chain_name"):
        return ChainContext(
            is_independent=True, insight="Independent facility - compared to state average"
        )

    facility_qm = _first_number(facility.get("qm_rating"), default=DEFAULT_STAR_RATING)
    chain_avg_qm = _first_number(chain_data.get("chain_avg_qm"), default=DEFAULT_STAR_RATING)
    vs_chain = facility_qm - chain_avg_qm

    if vs_chain >= 0.3:
        status = "ABOVE_PEERS"
    elif vs_chain <= -0.3:
        status = "BELOW_PEERS"
    else:
        status = "AT_PEERS"

    if vs_chain >= 0.5:
        insight = (f"Outperforming sister facilities by {vs_chain:.1f} stars - "
                   "best practices to share")
    elif vs_chain <= -0.5:
        insight = (f"Underperforming vs sister facilities by {abs(vs_chain):.1f} stars - "
                   "opportunity for peer learning")
    else:
        insight = "Performing in line with chain average"

    return ChainContext(
        chain_name=chain_data["chain_name"],
        chain_facility_count=chain_data.get("chain_facility_count"),
        chain_avg_qm=chain_avg_qm,
        chain_rank=chain_data.get("chain_rank"),
        chain_percentile=chain_data.get("chain_percentile"),
        facility_qm=facility_qm,
        vs_chain=vs_chain,
        vs_chain_status=status,
        best_in_chain=chain_data.get("best_in_chain"),
        insight=insight,
    )


def facility_gap(survey_risk_score: int, audit_score: float | None) -> FacilityGap:
    """External survey risk vs internal audit score for one facility."""
    if audit_score is None:
        return FacilityGap(
            status="NO_AUDIT_DATA", insight="No internal audit data available for comparison"
        )

    high_external = survey_risk_score >= GAP_SURVEY_RISK_THRESHOLD
    high_internal = audit_score < GAP_AUDIT_THRESHOLD

    if high_external and high_internal:
        status = "CONFIRMED_RISK"
        insight = "External and internal data agree - this facility needs urgent support"
    elif high_external:
        status = "VALIDATE"
        insight = ("Strong internal scores but elevated external risk. Verify audit processes "
                   "align with CMS focus areas.")
    elif high_internal:
        status = "HIDDEN_RISK"
        insight = ("Low external risk but internal audits show concerns. Address before problems "
                   "become visible to CMS.")
    else:
        status = "GOOD_SHAPE"
        insight = ("Both external and internal indicators are positive. Continue current "
                   "practices.")

    return FacilityGap(
        status=status,
        insight=insight,
        survey_risk_score=survey_risk_score,
        audit_score=audit_score,
    )


def calculate_survey_intelligence(
    facility: Mapping[str, Any],
    cms_data: Mapping[str, Any] | None = None,
    percentiles: Mapping[str, Any] | None = None,
    chain_data: Mapping[str, Any] | None = None,
    focus_areas: list[FocusArea | Mapping[str, Any]] | None = None,
    audit_score: float | None = None,
    calculated_at: datetime | None = None,
) -> SurveyIntelligence:
    """Assemble the full survey intelligence for a facility.

    Args:
        facility: Facility record (id, ccn, star ratings, occupancy, staffing)
        cms_data: CMS extract values (ratings, harm/fine counts, staffing hours)
        percentiles: 'rn_hours_pctl' and 'turnover_pctl' against peers
        chain_data: Chain name and average QM stars, if the facility is in a chain
        focus_areas: Systems ranked by focus score, highest first
        audit_score: Internal audit percentage, if available
        calculated_at: Calculation timestamp (defaults to now, UTC)
    """
    cms_data = cms_data or {}
    percentiles = percentiles or {}
    areas = [FocusArea.model_validate(dict(fa)) if not isinstance(fa, FocusArea) else fa
             for fa in (focus_areas or [])]

    resource = resource_score(facility, percentiles)
    occupancy = _first_number(
        cms_data.get("occupancy_rate"), facility.get("occupancy_rate"), default=DEFAULT_OCCUPANCY
    )
    quadrant = quadrant_for(occupancy, resource)
    risk = survey_risk(facility, quadrant, cms_data)
    metrics = operational_metrics(facility, cms_data)
    flags = alert_flags(metrics, quadrant, cms_data)

    ccn = facility.get("ccn") or cms_data.get("federal_provider_number")
    return SurveyIntelligence(
        facility_id=None if facility.get("id") is None else str(facility.get("id")),
        federal_provider_number=None if ccn is None else str(ccn),
        survey_risk=risk,
        focus_areas=[
            {"rank": i, "system": fa.system_name, "score": fa.system_score}
            for i, fa in enumerate(areas[:3], start=1)
        ],
        audit_score=(
            {"score": audit_score, "tier": audit_tier(audit_score)}
            if audit_score is not None
            else None
        ),
        resource_score=resource,
        capacity_strain=capacity_strain(occupancy, resource),
        quadrant=quadrant,
        metrics=metrics,
        alert_flags=flags,
        recommendations=recommendations(metrics, areas, flags),
        chain_context=chain_context(facility, chain_data),
        gap_analysis=facility_gap(risk.score, audit_score),
        calculated_at=calculated_at or datetime.now(timezone.utc),
        cms_data_as_of=(
            str(cms_data["processing_date"]) if cms_data.get("processing_date") else None
        ),
    )
