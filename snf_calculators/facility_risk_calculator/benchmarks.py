"""Compare facility metrics against peer-group aggregates.

Peer aggregates arrive as a nested mapping scope -> metric -> value, where the
scope is one of market, state or national and metric names use the prefixed
``avg_*`` convention of the aggregate source:

    {"national": {"avg_overall_rating": 3.1, "avg_deficiencies": 9.4}, ...}

A missing value on either side makes the comparison not applicable. That
result is always distinguishable from a real delta of zero.
"""

from typing import Any, Mapping

from pydantic import BaseModel

from snf_calculators.facility_risk_calculator.category_scorers import as_metrics
from snf_calculators.facility_risk_calculator.models import (
    BenchmarkComparison,
    FacilityMetrics,
    KeyMetricComparison,
)
from snf_calculators.facility_risk_calculator.record_processing import (
    parse_float,
    round_half_up,
)

Benchmarks = Mapping[str, Mapping[str, Any]]

SCOPES = ("market", "state", "national")

# Modes without their own aggregates are compared against national
COMPARISON_MODE_FALLBACK = {"chain": "national", "custom": "national"}

# Facility field name -> aggregate field name
BENCHMARK_FIELD_MAP = {
    "overall_rating": "avg_overall_rating",
    "quality_rating": "avg_quality_rating",
    "staffing_rating": "avg_staffing_rating",
    "health_inspection_rating": "avg_inspection_rating",
    "total_nursing_hprd": "avg_total_nursing_hprd",
    "rn_hprd": "avg_rn_hprd",
    "rn_turnover": "avg_rn_turnover",
    "occupancy": "avg_occupancy",
    "total_deficiencies": "avg_deficiencies",
}

# Deltas smaller than this are reported as "same"
SAME_TOLERANCE = 0.01


class KeyMetric(BaseModel):
    """A headline metric shown against peer aggregates.

    Attributes:
        key: Facility field read first
        alt_key: Facility field read when ``key`` is missing or empty
        benchmark_key: Aggregate field to compare against
        label: Display label
        format: 'percent', 'rating', 'decimal' or 'number'
        higher_is_better: Directionality of the metric
    """

    key: str
    alt_key: str | None = None
    benchmark_key: str
    label: str
    format: str
    higher_is_better: bool


KEY_METRICS = (
    KeyMetric(key="occupancy_rate", benchmark_key="avg_occupancy",
              label="Occupancy Rate", format="percent", higher_is_better=True),
    KeyMetric(key="overall_rating", benchmark_key="avg_overall_rating",
              label="Overall Rating", format="rating", higher_is_better=True),
    KeyMetric(key="total_nursing_hprd", alt_key="reported_total_nurse_hrs",
              benchmark_key="avg_total_nursing_hprd", label="Total HPRD",
              format="decimal", higher_is_better=True),
    KeyMetric(key="rn_hprd", alt_key="reported_rn_hrs", benchmark_key="avg_rn_hprd",
              label="RN HPRD", format="decimal", higher_is_better=True),
    KeyMetric(key="rn_turnover_rate", alt_key="rn_turnover", benchmark_key="avg_rn_turnover",
              label="RN Turnover", format="percent", higher_is_better=False),
    KeyMetric(key="total_deficiencies", alt_key="cycle1_total_health_deficiencies",
              benchmark_key="avg_deficiencies", label="Deficiencies",
              format="number", higher_is_better=False),
)


def format_delta(delta: float, is_percentage: bool = False) -> str:
    """Signed delta text: '+3%' / '-2%' for percentages, '+0.45' otherwise."""
    sign = "+" if delta >= 0 else ""
    if is_percentage:
        return f"{sign}{int(round_half_up(delta))}%"
    return f"{sign}{delta:.2f}"


def compare_values(
    facility_value: Any,
    peer_value: Any,
    is_percentage: bool = False,
    lower_is_better: bool = False,
) -> BenchmarkComparison:
    """Compare a facility value with one peer value.

    Args:
        facility_value: Facility value; numbers or numeric strings
        peer_value: Peer aggregate value; numbers or numeric strings
        is_percentage: Format the delta as a whole percentage
        lower_is_better: True for count-like metrics (deficiencies, turnover)

    Returns:
        BenchmarkComparison; not applicable when either side is missing or
        non-numeric
    """
    facility = parse_float(facility_value)
    peer = parse_float(peer_value)
    if facility is None or peer is None:
        return BenchmarkComparison(facility_value=facility, peer_value=peer)

    delta = facility - peer
    is_worse = delta > 0 if lower_is_better else delta < 0

    if abs(delta) < SAME_TOLERANCE:
        status = "same"
    else:
        status = "worse" if is_worse else "better"

    return BenchmarkComparison(
        facility_value=facility,
        peer_value=peer,
        delta=delta,
        formatted=format_delta(delta, is_percentage),
        is_favorable=not is_worse,
        status=status,
        applicable=True,
    )


def get_benchmark(benchmarks: Benchmarks | None, scope: str, field: str) -> float | None:
    """Look up a peer value by facility field name, e.g. ('national', 'occupancy').

    The translated ``avg_*`` name wins; the untranslated name is the fallback.
    """
    if not benchmarks or not benchmarks.get(scope):
        return None
    data = benchmarks[scope]
    backend_field = BENCHMARK_FIELD_MAP.get(field, field)
    value = data.get(backend_field)
    if value is None:
        value = data.get(field)
    return parse_float(value)


def resolve_scope(mode: str) -> str:
    """Aggregate scope used for a comparison mode."""
    scope = COMPARISON_MODE_FALLBACK.get(mode, mode)
    if scope not in SCOPES:
        raise ValueError(f"Unknown comparison mode: {mode}. Expected one of: "
                         f"{', '.join(SCOPES + tuple(COMPARISON_MODE_FALLBACK))}")
    return scope


def comparison_value(benchmarks: Benchmarks | None, mode: str, benchmark_key: str) -> float | None:
    """Aggregate value for an ``avg_*`` key under a comparison mode."""
    scope = resolve_scope(mode)
    if not benchmarks or not benchmarks.get(scope):
        return None
    return parse_float(benchmarks[scope].get(benchmark_key))


def key_metric_value(metrics: FacilityMetrics, metric: KeyMetric) -> float | None:
    value = metrics.get(metric.key)
    if (value is None or value == "") and metric.alt_key:
        value = metrics.get(metric.alt_key)
    return parse_float(value)


def compare_key_metrics(
    metrics: FacilityMetrics | Mapping[str, Any],
    benchmarks: Benchmarks | None,
    mode: str = "state",
) -> list[KeyMetricComparison]:
    """Compare every headline metric against market, state and national values.

    ``comparison`` is made against the scope selected by ``mode``.
    """
    metrics = as_metrics(metrics)
    scope = resolve_scope(mode)

    results: list[KeyMetricComparison] = []
    for metric in KEY_METRICS:
        facility_value = key_metric_value(metrics, metric)
        peers = {s: comparison_value(benchmarks, s, metric.benchmark_key) for s in SCOPES}
        results.append(
            KeyMetricComparison(
                metric=metric.key,
                label=metric.label,
                format=metric.format,
                facility_value=facility_value,
                market=peers["market"],
                state=peers["state"],
                national=peers["national"],
                comparison=compare_values(
                    facility_value,
                    peers[scope],
                    is_percentage=metric.format == "percent",
                    lower_is_better=not metric.higher_is_better,
                ),
            )
        )
    return results
