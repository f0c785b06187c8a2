"""Tests for peer benchmark comparison and trend evaluation."""

from datetime import date

import pytest

from snf_calculators.facility_risk_calculator.benchmarks import (
    compare_key_metrics,
    compare_values,
    get_benchmark,
    resolve_scope,
)
from snf_calculators.facility_risk_calculator.models import TrendDirection
from snf_calculators.facility_risk_calculator.trends import evaluate_trend, window_direction


class TestCompareValues:
    """Tests for compare_values."""

    def test_lower_is_better(self):
        """More deficiencies than peers is unfavorable."""
        result = compare_values(10, 5, lower_is_better=True)
        assert result.delta == 5
        assert result.is_favorable is False
        assert result.status == "worse"
        assert result.formatted == "+5.00"

    def test_higher_is_better(self):
        result = compare_values(5, 3)
        assert result.is_favorable is True
        assert result.status == "better"
        assert result.formatted == "+2.00"

    def test_percentage_format(self):
        assert compare_values(72.4, 80, is_percentage=True).formatted == "-8%"

    def test_numeric_strings(self):
        assert compare_values("45.5%", "40").delta == pytest.approx(5.5)

    @pytest.mark.parametrize("facility, peer", [(None, 3), (3, None), ("n/a", 3), (None, None)])
    def test_not_applicable(self, facility, peer):
        """A missing side is not applicable, never a zero delta."""
        result = compare_values(facility, peer)
        assert result.applicable is False
        assert result.delta is None
        assert result.is_favorable is None
        assert result.formatted == "N/A"

    def test_zero_delta_is_applicable(self):
        result = compare_values(3, 3)
        assert result.applicable is True
        assert result.delta == 0
        assert result.status == "same"
        assert result.formatted == "+0.00"


class TestBenchmarkLookup:
    """Tests for scope and field-alias lookups."""

    @pytest.fixture
    def benchmarks(self):
        return {
            "market": {"avg_occupancy": 78},
            "state": {"avg_occupancy": 80, "avg_overall_rating": 3.5, "avg_deficiencies": 9},
            "national": {"avg_occupancy": 81, "occupancy_rate": 50, "avg_rn_hprd": "0.7"},
        }

    def test_translated_name_wins(self, benchmarks):
        assert get_benchmark(benchmarks, "national", "occupancy") == 81

    def test_untranslated_fallback(self):
        assert get_benchmark({"state": {"occupancy": 70}}, "state", "occupancy") == 70

    def test_missing_scope(self, benchmarks):
        assert get_benchmark(benchmarks, "county", "occupancy") is None
        assert get_benchmark(None, "state", "occupancy") is None

    def test_resolve_scope(self):
        assert resolve_scope("state") == "state"
        assert resolve_scope("chain") == "national"
        with pytest.raises(ValueError):
            resolve_scope("galaxy")

    def test_compare_key_metrics(self, benchmarks):
        rows = compare_key_metrics(
            {"occupancy_rate": 85, "overall_rating": 4, "cycle1_total_health_deficiencies": "12"},
            benchmarks,
            mode="state",
        )
        by_metric = {row.metric: row for row in rows}
        assert len(rows) == 6

        occupancy = by_metric["occupancy_rate"]
        assert (occupancy.market, occupancy.state, occupancy.national) == (78, 80, 81)
        assert occupancy.comparison.formatted == "+5%"
        assert occupancy.comparison.is_favorable is True

        deficiencies = by_metric["total_deficiencies"]
        assert deficiencies.facility_value == 12
        assert deficiencies.comparison.status == "worse"

        assert by_metric["rn_hprd"].comparison.applicable is False
        assert by_metric["rn_hprd"].national == 0.7

    def test_chain_mode_uses_national(self, benchmarks):
        rows = compare_key_metrics({"occupancy_rate": 85}, benchmarks, mode="chain")
        assert rows[0].comparison.peer_value == 81


def _snapshot(day, **fields):
    return {"facility_id": "015009", "snapshot_date": day, **fields}


class TestTrend:
    """Tests for trend direction and historical replay."""

    def test_decreasing_window(self):
        direction, change = window_direction([70, 60, 50])
        assert direction == TrendDirection.decreasing
        assert change == 10.0

    def test_short_window_halves_overlap(self):
        """Four points compare the first three with the last three."""
        direction, change = window_direction([10, 50, 0, 20])
        assert direction == TrendDirection.increasing
        assert change == pytest.approx(3.3)

    def test_six_point_window(self):
        """Only the trailing six points count; halves are three points each."""
        direction, change = window_direction([0, 10, 20, 20, 20, 40, 40, 40])
        assert direction == TrendDirection.increasing
        assert change == pytest.approx(20.0)

    def test_stable_and_neutral(self):
        assert window_direction([40, 40]) == (TrendDirection.stable, 0.0)
        assert window_direction([40]) == (TrendDirection.neutral, None)
        assert window_direction([]) == (TrendDirection.neutral, None)

    def test_evaluate_trend_sorts_and_drops_undated(self):
        high_risk = dict(
            cycle1_total_health_deficiencies="18",
            fine_total_dollars=120000,
            health_inspection_rating=1,
            sff_status=True,
        )
        trend = evaluate_trend(
            [
                _snapshot("2024-06-01"),
                _snapshot(None, **high_risk),
                _snapshot("2024-01-01", **high_risk),
            ]
        )
        assert [p.snapshot_date for p in trend.series] == [date(2024, 1, 1), date(2024, 6, 1)]
        assert [p.composite for p in trend.series] == [50, 10]
        assert trend.direction == TrendDirection.decreasing
        assert trend.change == 40.0
        assert trend.current_score == 10

    def test_empty_history(self):
        trend = evaluate_trend([])
        assert trend.series == []
        assert trend.direction == TrendDirection.neutral
        assert trend.current_score is None
