"""Tests for audit scorecard arithmetic."""

import pytest

from snf_calculators.facility_risk_calculator.scorecard import (
    Scorecard,
    ScorecardItem,
    ScorecardSystem,
    item_points,
    percentage,
    recalculate_scorecard,
    system_percentages,
)


class TestItemPoints:
    """Tests for per-item and percentage arithmetic."""

    @pytest.mark.parametrize(
        "max_points, met, sample, expected",
        [(10, 3, 4, 7.5), (10, 1, 3, 3.33), (10, None, 4, 0), (10, 3, 0, 0), (10, 3, None, 0)],
    )
    def test_item_points(self, max_points, met, sample, expected):
        assert item_points(max_points, met, sample) == expected

    def test_percentage(self):
        assert percentage(27.5, 100) == 27.5
        assert percentage(1, 3) == 33.3
        assert percentage(None, 100) == 0
        assert percentage(10, 0) == 0


class TestRecalculateScorecard:
    """Tests for recalculate_scorecard and system_percentages."""

    @pytest.fixture
    def scorecard(self):
        return Scorecard(
            facility_id="015009",
            year=2024,
            month=6,
            systems=[
                ScorecardSystem(
                    system_number=5,
                    system_name="Infection Control",
                    items=[
                        ScorecardItem(item_number=1, max_points=10, charts_met=3, sample_size=4),
                        ScorecardItem(item_number=2, max_points=20, charts_met=5, sample_size=5),
                    ],
                ),
                ScorecardSystem(system_number=2, system_name="Accidents/Falls", total_points_earned=50),
                ScorecardSystem(system_number=3, system_name="Skin"),
            ],
        )

    def test_totals(self, scorecard):
        result = recalculate_scorecard(scorecard)
        infection = result.systems[0]
        assert [i.points_earned for i in infection.items] == [7.5, 20]
        assert infection.total_points_earned == 27.5
        # Systems without items keep their totals but do not count
        assert result.systems[1].total_points_earned == 50
        assert result.total_score == 27.5

    def test_input_untouched(self, scorecard):
        recalculate_scorecard(scorecard)
        assert scorecard.systems[0].items[0].points_earned is None
        assert scorecard.total_score is None

    def test_system_percentages(self, scorecard):
        entries = system_percentages(recalculate_scorecard(scorecard))
        assert [(e.system_number, e.score) for e in entries] == [(5, 27.5), (2, 50.0), (3, None)]
        assert all(e.facility_id == "015009" and e.year == 2024 for e in entries)
