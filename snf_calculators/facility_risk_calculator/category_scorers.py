"""Regulatory, Staffing and Financial category risk scorers.

Each scorer reads three or four sub-factors from a facility snapshot, awards
points through its threshold ladder and caps the total at 100. Missing or
non-numeric inputs never raise; they fall back to a secondary field and then
to a fixed default (see thresholds.DEFAULT_*), and the resulting component is
flagged as defaulted.
"""

from typing import Any, Mapping

from snf_calculators.facility_risk_calculator.models import (
    CategoryScore,
    FacilityMetrics,
    ScoreComponent,
)
from snf_calculators.facility_risk_calculator.record_processing import (
    FieldReading,
    parse_int,
    read_flag,
    read_number,
    round_half_up,
    to_number,
)
from snf_calculators.facility_risk_calculator.thresholds import (
    ADMIN_TENURE_LADDER,
    CATEGORY_CAP,
    DEFAULT_ADMIN_DAYS,
    DEFAULT_CERTIFIED_BEDS,
    DEFAULT_MEDICAID_PCT,
    DEFAULT_VBP_ADJUSTMENT,
    DEFICIENCY_LADDER,
    INSPECTION_RATING_LADDER,
    MEDICAID_LADDER,
    OCCUPANCY_LADDER,
    PENALTY_LADDER,
    QUALITY_RATING_LADDER,
    RN_TURNOVER_LADDER,
    SFF_POINTS,
    STAFFING_RATING_LADDER,
    TOTAL_TURNOVER_LADDER,
    VBP_LADDER,
    ThresholdLadder,
)


def as_metrics(metrics: FacilityMetrics | Mapping[str, Any]) -> FacilityMetrics:
    """Accept either a FacilityMetrics or a raw record dict."""
    if isinstance(metrics, FacilityMetrics):
        return metrics
    return FacilityMetrics.model_validate(dict(metrics))


def _component(
    factor_id: str,
    label: str,
    reading: FieldReading,
    ladder: ThresholdLadder,
    benchmark_key: str | None = None,
) -> ScoreComponent:
    return ScoreComponent(
        factor_id=factor_id,
        label=label,
        facility_value=reading.value,
        points=ladder.points(reading.value),
        max_points=ladder.max_points,
        source_field=reading.source_field,
        defaulted=reading.defaulted,
        benchmark_key=benchmark_key,
    )


def _category(category: str, components: list[ScoreComponent]) -> CategoryScore:
    total = sum(c.points for c in components)
    return CategoryScore(
        category=category,
        score=max(0, min(CATEGORY_CAP, total)),
        components=components,
    )


def score_regulatory(metrics: FacilityMetrics | Mapping[str, Any]) -> CategoryScore:
    """Regulatory risk: deficiencies, penalties, inspection rating, SFF status."""
    metrics = as_metrics(metrics)

    deficiencies = read_number(
        metrics, "cycle1_total_health_deficiencies", "total_deficiencies", integer=True
    )
    penalties = read_number(metrics, "fine_total_dollars", "total_penalties_amount")
    inspection = read_number(metrics, "health_inspection_rating", integer=True)
    sff = read_flag(metrics, "sff_status", "special_focus_facility")

    components = [
        _component("deficiencies", "Health Deficiencies", deficiencies, DEFICIENCY_LADDER,
                   "avg_deficiencies"),
        _component("penalties", "Total Penalties", penalties, PENALTY_LADDER),
        _component("inspection_rating", "Inspection Rating", inspection,
                   INSPECTION_RATING_LADDER, "avg_inspection_rating"),
        ScoreComponent(
            factor_id="sff_status",
            label="Special Focus Facility",
            facility_value=sff.value,
            points=SFF_POINTS if sff.value else 0,
            max_points=SFF_POINTS,
            source_field=sff.source_field,
            defaulted=sff.defaulted,
        ),
    ]
    return _category("regulatory", components)


def score_staffing(metrics: FacilityMetrics | Mapping[str, Any]) -> CategoryScore:
    """Staffing risk: RN turnover, total nursing turnover, staffing rating, admin tenure."""
    metrics = as_metrics(metrics)

    rn_turnover = read_number(metrics, "rn_turnover", "rn_turnover_rate")
    total_turnover = read_number(metrics, "total_nursing_turnover", "total_turnover_rate")
    staffing_rating = read_number(metrics, "staffing_rating", integer=True)
    admin_days = read_number(
        metrics, "administrator_days_in_role", default=DEFAULT_ADMIN_DAYS, integer=True
    )

    components = [
        _component("rn_turnover", "RN Turnover", rn_turnover, RN_TURNOVER_LADDER,
                   "avg_rn_turnover"),
        _component("total_turnover", "Total Nursing Turnover", total_turnover,
                   TOTAL_TURNOVER_LADDER, "avg_total_turnover"),
        _component("staffing_rating", "Staffing Rating", staffing_rating,
                   STAFFING_RATING_LADDER, "avg_staffing_rating"),
        _component("admin_tenure", "Administrator Tenure (days)", admin_days,
                   ADMIN_TENURE_LADDER),
    ]
    return _category("staffing", components)


def read_occupancy(metrics: FacilityMetrics) -> FieldReading:
    """Occupancy % as reported, else average residents / certified beds."""
    reported = to_number(metrics.get("occupancy_rate"))
    if reported:
        return FieldReading(value=reported, source_field="occupancy_rate", defaulted=False)

    beds = parse_int(metrics.get("certified_beds")) or DEFAULT_CERTIFIED_BEDS
    residents = parse_int(metrics.get("average_residents_per_day")) or 0
    occupancy = round_half_up(residents / beds * 100)
    return FieldReading(
        value=occupancy,
        source_field="average_residents_per_day" if residents else None,
        defaulted=not residents,
        observed=reported,
    )


def score_financial(metrics: FacilityMetrics | Mapping[str, Any]) -> CategoryScore:
    """Financial risk: Medicaid dependency, occupancy, quality rating, VBP adjustment."""
    metrics = as_metrics(metrics)

    medicaid = read_number(metrics, "medicaid_pct", default=DEFAULT_MEDICAID_PCT)
    occupancy = read_occupancy(metrics)
    quality = read_number(metrics, "qm_rating", "quality_rating", integer=True)
    vbp = read_number(metrics, "vbp_adjustment", default=DEFAULT_VBP_ADJUSTMENT)

    components = [
        _component("medicaid_pct", "Medicaid Dependency", medicaid, MEDICAID_LADDER),
        _component("occupancy", "Occupancy", occupancy, OCCUPANCY_LADDER, "avg_occupancy"),
        _component("quality_rating", "Quality Rating", quality, QUALITY_RATING_LADDER,
                   "avg_quality_rating"),
        _component("vbp_adjustment", "VBP Adjustment", vbp, VBP_LADDER),
    ]
    return _category("financial", components)


def regulatory_risk(metrics: FacilityMetrics | Mapping[str, Any]) -> int:
    return score_regulatory(metrics).score


def staffing_risk(metrics: FacilityMetrics | Mapping[str, Any]) -> int:
    return score_staffing(metrics).score


def financial_risk(metrics: FacilityMetrics | Mapping[str, Any]) -> int:
    return score_financial(metrics).score
