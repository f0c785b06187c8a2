"""Tests for facility-level survey intelligence."""

from datetime import datetime, timezone

import pytest

from snf_calculators.facility_risk_calculator.survey_intelligence import (
    MetricReading,
    MetricStatus,
    OperationalMetrics,
    Quadrant,
    alert_flags,
    audit_tier,
    calculate_survey_intelligence,
    chain_context,
    facility_gap,
    metric_status,
    quadrant_for,
    recommendations,
    resource_score,
    survey_risk,
)


def _metrics(turnover=None, skill_mix=None, rn_hours=None, weekend_gap=None, occupancy=None):
    return OperationalMetrics(
        turnover=MetricReading(value=turnover, target="<40%"),
        rn_skill_mix=MetricReading(value=skill_mix, target="30%+"),
        rn_hours=MetricReading(value=rn_hours, target="0.50-0.75"),
        weekend_gap=MetricReading(value=weekend_gap, target="<20%"),
        occupancy=MetricReading(value=occupancy, target="80-90%"),
    )


class TestStatusAndTiers:
    """Tests for metric status, quadrant and tier helpers."""

    @pytest.mark.parametrize(
        "value, expected",
        [(65, MetricStatus.critical), (55, MetricStatus.warning), (45, MetricStatus.target),
         (35, MetricStatus.excellent)],
    )
    def test_turnover_higher_is_worse(self, value, expected):
        assert metric_status(value, "turnover", inverse=True) == expected

    def test_skill_mix(self):
        assert metric_status(0.10, "rn_skill_mix") == MetricStatus.critical
        assert metric_status(0.22, "rn_skill_mix") == MetricStatus.target
        assert metric_status(0.31, "rn_skill_mix") == MetricStatus.excellent

    def test_missing_and_unknown(self):
        assert metric_status(None, "turnover") is None
        assert metric_status(1, "falls") == MetricStatus.unknown

    @pytest.mark.parametrize(
        "occupancy, resource, quadrant",
        [(85, 40, Quadrant.overextended), (85, 60, Quadrant.high_performing),
         (70, 40, Quadrant.struggling), (70, 60, Quadrant.comfortable)],
    )
    def test_quadrant(self, occupancy, resource, quadrant):
        assert quadrant_for(occupancy, resource) == quadrant

    def test_audit_tier(self):
        assert audit_tier(90) == "Excellent"
        assert audit_tier(65) == "Fair"
        assert audit_tier(10) == "Critical"

    def test_resource_score_defaults(self):
        """3-star ratings and 50th percentiles."""
        assert resource_score({}, {}) == pytest.approx(57.0)


class TestSurveyRisk:
    """Tests for the lagging/leading survey risk score."""

    def test_worst_case(self):
        risk = survey_risk(
            {"is_sff": True},
            Quadrant.struggling,
            {
                "health_inspection_rating": 1,
                "prev_harm_count": 5,
                "fine_count": 2,
                "had_ij_last_survey": True,
            },
        )
        # lagging 30 + 40 + 20 (capped) + 6 + 10
        assert risk.lagging_component == 106
        assert risk.leading_component == 30
        assert risk.score == 83
        assert risk.tier == "Critical"

    def test_defaults(self):
        """No data: 3 health stars, high-performing quadrant."""
        risk = survey_risk({}, Quadrant.high_performing)
        assert risk.score == 14
        assert risk.tier == "Low"


class TestFlagsAndRecommendations:
    """Tests for alert flags and recommendations."""

    def test_missing_metrics_raise_nothing(self):
        metrics = _metrics()
        assert alert_flags(metrics, Quadrant.comfortable) == []
        assert recommendations(metrics) == []

    def test_double_trouble_replaces_single_recommendations(self):
        metrics = _metrics(turnover=55, rn_hours=0.35)
        flags = alert_flags(metrics, Quadrant.comfortable)
        assert [f.name for f in flags] == ["DOUBLE_TROUBLE"]

        recs = recommendations(metrics, flags=flags)
        assert [r.area for r in recs] == ["Staffing Crisis"]
        assert recs[0].current == "Turnover: 55%, RN Hours: 0.35"

    def test_priorities_are_consecutive(self):
        metrics = _metrics(turnover=55, skill_mix=0.2, rn_hours=0.45, weekend_gap=0.3)
        recs = recommendations(metrics)
        assert [r.area for r in recs] == ["Turnover", "RN Skill Mix", "RN Hours", "Weekend Staffing"]
        assert [r.priority for r in recs] == [1, 2, 3, 4]

    def test_abuse_history(self):
        flags = alert_flags(_metrics(), Quadrant.comfortable, {"has_abuse_citations": True})
        assert [f.name for f in flags] == ["ABUSE_HISTORY"]


class TestContextAndGap:
    """Tests for chain context and the facility gap."""

    def test_independent(self):
        context = chain_context({"qm_rating": 4})
        assert context.is_independent

    def test_chain_comparison(self):
        context = chain_context({"qm_rating": 4}, {"chain_name": "Acme", "chain_avg_qm": 3.4})
        assert context.vs_chain_status == "ABOVE_PEERS"
        assert context.insight.startswith("Outperforming sister facilities by 0.6 stars")

    @pytest.mark.parametrize(
        "risk, audit, status",
        [(60, 65, "CONFIRMED_RISK"), (60, 80, "VALIDATE"), (30, 65, "HIDDEN_RISK"),
         (30, 80, "GOOD_SHAPE"), (30, None, "NO_AUDIT_DATA")],
    )
    def test_facility_gap(self, risk, audit, status):
        assert facility_gap(risk, audit).status == status


class TestCalculateSurveyIntelligence:
    """End-to-end survey intelligence."""

    def test_struggling_facility(self):
        calculated_at = datetime(2025, 10, 18, tzinfo=timezone.utc)
        result = calculate_survey_intelligence(
            facility={
                "id": 42,
                "ccn": "015009",
                "staffing_rating": 2,
                "qm_rating": 2,
                "occupancy_rate": 68,
                "health_inspection_rating": 2,
            },
            cms_data={
                "total_nursing_turnover": 58,
                "rn_staffing_hours": 0.35,
                "total_nurse_staffing_hours": 3.5,
                "weekend_total_nurse_hours": 2.5,
                "processing_date": "2025-10-01",
            },
            percentiles={"rn_hours_pctl": 20, "turnover_pctl": 80},
            audit_score=65,
            calculated_at=calculated_at,
        )

        assert result.facility_id == "42"
        assert result.federal_provider_number == "015009"
        assert result.resource_score == pytest.approx(34.0)
        assert result.quadrant == Quadrant.struggling
        assert result.survey_risk.score == 30
        assert result.metrics.turnover.status == MetricStatus.warning
        assert result.metrics.rn_skill_mix.status == MetricStatus.critical
        assert result.metrics.occupancy.status == MetricStatus.target
        assert [f.name for f in result.alert_flags] == [
            "DOUBLE_TROUBLE",
            "DEATH_SPIRAL_RISK",
            "WEEKEND_VULNERABILITY",
        ]
        assert [r.area for r in result.recommendations] == [
            "Staffing Crisis",
            "RN Skill Mix",
            "Weekend Staffing",
        ]
        assert result.audit_score == {"score": 65, "tier": "Fair"}
        assert result.gap_analysis.status == "HIDDEN_RISK"
        assert result.chain_context.is_independent
        assert result.calculated_at == calculated_at
        assert result.cms_data_as_of == "2025-10-01"

    def test_focus_areas_ranked(self):
        result = calculate_survey_intelligence(
            facility={},
            focus_areas=[{"system_name": "Skin", "system_score": 72}, {"system_name": "Falls", "system_score": 40}],
        )
        assert result.focus_areas[0] == {"rank": 1, "system": "Skin", "score": 72}
        assert any(r.area == "Focus Area: Skin" for r in result.recommendations)
