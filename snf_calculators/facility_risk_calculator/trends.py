"""Replay the risk scorers over a facility's snapshot history."""

from typing import Any, Iterable, Mapping

from snf_calculators.facility_risk_calculator.calculator import FacilityRiskCalculator
from snf_calculators.facility_risk_calculator.category_scorers import as_metrics
from snf_calculators.facility_risk_calculator.models import (
    FacilityMetrics,
    RiskTrend,
    TrendDirection,
    TrendPoint,
)
from snf_calculators.facility_risk_calculator.record_processing import round_half_up

TREND_WINDOW = 6
TREND_HALF = 3


def window_direction(scores: list[int]) -> tuple[TrendDirection, float | None]:
    """Direction over the trailing window and the absolute change of half means.

    The window holds the latest TREND_WINDOW scores. Its earliest and latest
    TREND_HALF points are averaged and compared. Windows shorter than four
    points use halves of one point less than their length, so below six points
    the halves overlap.
    """
    window = scores[-TREND_WINDOW:]
    if len(window) < 2:
        return TrendDirection.neutral, None

    half = min(TREND_HALF, len(window) - 1)
    old_avg = sum(window[:half]) / half
    new_avg = sum(window[-half:]) / half

    if new_avg > old_avg:
        direction = TrendDirection.increasing
    elif new_avg < old_avg:
        direction = TrendDirection.decreasing
    else:
        direction = TrendDirection.stable
    return direction, round_half_up(abs(new_avg - old_avg), 1)


def evaluate_trend(
    history: Iterable[FacilityMetrics | Mapping[str, Any]],
    calculator: FacilityRiskCalculator | None = None,
) -> RiskTrend:
    """Score every dated snapshot and derive the trend direction.

    Snapshots without a date cannot be placed in the series and are dropped.
    Input order does not matter; the series is sorted ascending by date.

    Example:
        >>> trend = evaluate_trend(snapshots)
        >>> trend.direction, trend.change
        (<TrendDirection.decreasing: 'decreasing'>, 20.0)
    """
    calculator = calculator or FacilityRiskCalculator()

    dated = [m for m in (as_metrics(h) for h in history) if m.snapshot_date is not None]
    dated.sort(key=lambda m: m.snapshot_date)

    series: list[TrendPoint] = []
    for snapshot in dated:
        result = calculator.score(snapshot)
        series.append(
            TrendPoint(
                snapshot_date=snapshot.snapshot_date,
                regulatory=result.regulatory.score,
                staffing=result.staffing.score,
                financial=result.financial.score,
                composite=result.composite.score,
                label=result.composite.label,
            )
        )

    direction, change = window_direction([p.composite for p in series])
    return RiskTrend(
        series=series,
        direction=direction,
        change=change,
        current_score=series[-1].composite if series else None,
    )
