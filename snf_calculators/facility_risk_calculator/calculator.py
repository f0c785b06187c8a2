"""SNF Facility Risk Calculator.

This module implements the composite scorer and the main calculator class that:
1. Scores the Regulatory, Staffing and Financial categories
2. Combines them with fixed weights (0.40 / 0.35 / 0.25)
3. Rounds half-up to an integer in [0, 100]
4. Maps the result to a four-tier risk label with color tokens
"""

from typing import Any, Iterable, Mapping

from snf_calculators.facility_risk_calculator.category_scorers import (
    as_metrics,
    score_financial,
    score_regulatory,
    score_staffing,
)
from snf_calculators.facility_risk_calculator.models import (
    CompositeScore,
    FacilityMetrics,
    FacilityRiskOutput,
    RiskLabel,
)
from snf_calculators.facility_risk_calculator.record_processing import round_half_up
from snf_calculators.facility_risk_calculator.thresholds import (
    COMPOSITE_WEIGHTS,
    LABEL_BOUNDARIES,
)

RISK_LABELS = (RiskLabel.low, RiskLabel.medium, RiskLabel.high, RiskLabel.severe)
RISK_COLORS = ("#22c55e", "#eab308", "#f97316", "#ef4444")
RISK_BACKGROUNDS = ("#f0fdf4", "#fefce8", "#fff7ed", "#fef2f2")


def _tier(score: float) -> int:
    for index, upper in enumerate(LABEL_BOUNDARIES):
        if score <= upper:
            return index
    return len(LABEL_BOUNDARIES)


def risk_label(score: float) -> RiskLabel:
    return RISK_LABELS[_tier(score)]


def risk_color(score: float) -> str:
    return RISK_COLORS[_tier(score)]


def risk_background(score: float) -> str:
    return RISK_BACKGROUNDS[_tier(score)]


def composite(regulatory: int, staffing: int, financial: int) -> CompositeScore:
    """Weighted composite of the three category scores.

    Example:
        >>> composite(100, 40, 20).score
        59
    """
    reg_weight, staff_weight, fin_weight = COMPOSITE_WEIGHTS
    weighted = regulatory * reg_weight + staffing * staff_weight + financial * fin_weight
    score = int(max(0, min(100, round_half_up(weighted))))
    return CompositeScore(
        score=score,
        label=risk_label(score),
        color=risk_color(score),
        background=risk_background(score),
        regulatory=regulatory,
        staffing=staffing,
        financial=financial,
    )


class FacilityRiskCalculator:
    """Composite risk calculator for skilled-nursing facilities.

    Example:
        >>> calculator = FacilityRiskCalculator()
        >>> result = calculator.score({
        ...     "facility_id": "015009",
        ...     "cycle1_total_health_deficiencies": "18",
        ...     "fine_total_dollars": 120000,
        ...     "health_inspection_rating": 1,
        ...     "sff_status": True,
        ... })
        >>> result.regulatory.score
        100
    """

    def score(self, metrics: FacilityMetrics | Mapping[str, Any]) -> FacilityRiskOutput:
        """Score one facility snapshot.

        Args:
            metrics: FacilityMetrics or a raw record dict with CMS field names

        Returns:
            FacilityRiskOutput with category breakdowns and the composite
        """
        metrics = as_metrics(metrics)

        regulatory = score_regulatory(metrics)
        staffing = score_staffing(metrics)
        financial = score_financial(metrics)
        overall = composite(regulatory.score, staffing.score, financial.score)

        defaulted = [
            f"{category.category}.{c.factor_id}"
            for category in (regulatory, staffing, financial)
            for c in category.components
            if c.defaulted
        ]

        return FacilityRiskOutput(
            facility_id=metrics.facility_id,
            snapshot_date=metrics.snapshot_date,
            regulatory=regulatory,
            staffing=staffing,
            financial=financial,
            composite=overall,
            details={
                "weights": dict(zip(("regulatory", "staffing", "financial"), COMPOSITE_WEIGHTS)),
                "defaulted_factors": defaulted,
            },
        )

    def score_batch(
        self, snapshots: Iterable[FacilityMetrics | Mapping[str, Any]]
    ) -> list[FacilityRiskOutput]:
        """Score many snapshots; order of the output follows the input."""
        return [self.score(snapshot) for snapshot in snapshots]
