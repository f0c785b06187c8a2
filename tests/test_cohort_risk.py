"""Tests for cohort survey risk analytics."""

from datetime import date, timedelta

import pytest

from snf_calculators.facility_risk_calculator.cohort_risk import (
    cohort_risk_trend,
    common_issues,
    facility_survey_risk,
    summarize_cohort,
)
from snf_calculators.facility_risk_calculator.models import Citation, RiskTier

AS_OF = date(2024, 7, 1)


def _citation(facility_id, tag, survey_date, scope="D"):
    return Citation(
        facility_id=facility_id, tag=tag, scope_severity=scope, survey_date=survey_date
    )


class TestFacilitySurveyRisk:
    """Tests for the weighted per-facility survey risk."""

    def test_no_citations(self):
        risk = facility_survey_risk([], 10)
        assert risk.score == 15
        assert risk.level == RiskTier.low

    def test_recent_immediate_jeopardy(self):
        """Recency 100, severity 100, half the tags repeated, low volume."""
        citations = [
            _citation("A", "F880", AS_OF, scope="J"),
            _citation("A", "880", AS_OF),
            _citation("A", "F689", AS_OF),
        ]
        risk = facility_survey_risk(citations, 30)
        # 24 + 29 + 12 + 5.75
        assert risk.score == 71
        assert risk.level == RiskTier.high

    def test_old_minor_citation(self):
        risk = facility_survey_risk([_citation("A", "F550", AS_OF)], 400)
        # 6 + 11.6 + 0 + 5.75
        assert risk.score == 23
        assert risk.level == RiskTier.low


class TestCohortSummary:
    """Tests for summarize_cohort."""

    @pytest.fixture
    def citations(self):
        recent = AS_OF - timedelta(days=30)
        return [
            _citation("A", "F880", recent, scope="J"),
            _citation("A", "F880", recent),
            _citation("A", "F689", recent),
            _citation("B", "F880", AS_OF - timedelta(days=400)),
            _citation("Z", "F880", AS_OF),
        ]

    def test_summary(self, citations):
        summary = summarize_cohort(["A", "B", "C"], citations, as_of=AS_OF)

        assert summary.facility_count == 3
        assert [(f.facility_id, f.risk_score) for f in summary.facilities] == [
            ("A", 71),
            ("B", 23),
            ("C", 15),
        ]
        assert summary.risk_score == 36
        assert summary.risk_level == RiskTier.low
        assert summary.distribution == {"low": 2, "moderate": 0, "high": 1}
        assert summary.highest_risk_facility.facility_id == "A"
        assert summary.days_since_last_citation == 30
        assert summary.total_citations == 4

    def test_facility_without_citations(self, citations):
        summary = summarize_cohort(["C"], citations, as_of=AS_OF)
        assert summary.facilities[0].last_survey_date is None
        assert summary.days_since_last_citation is None

    def test_empty_cohort(self, citations):
        summary = summarize_cohort([], citations, as_of=AS_OF)
        assert summary.facility_count == 0
        assert summary.risk_score == 0
        assert summary.highest_risk_facility is None


class TestCommonIssues:
    """Tests for repeated tags across a cohort."""

    def test_worsening_and_improving(self):
        old = date(2022, 5, 1)
        citations = [
            _citation("A", "F880", date(2024, 6, 1)),
            _citation("B", "880", date(2024, 5, 1)),
            _citation("C", "F880", old),
            _citation("A", "F689", old),
            _citation("B", "F689", old),
            _citation("A", "F550", date(2024, 6, 1)),
        ]
        issues = common_issues(citations, as_of=AS_OF)

        assert [i.tag for i in issues] == ["F-0880", "F-0689"]
        infection, falls = issues
        assert infection.facilities_affected == 3
        assert infection.trend == "worsening"
        assert infection.system_name == "Infection Control"
        assert infection.last_cited == date(2024, 6, 1)
        assert falls.trend == "improving"
        assert falls.system_name == "Accidents/Falls"

    def test_unmapped_tag_is_other(self):
        citations = [_citation("A", "F550", None), _citation("B", "F550", None)]
        (issue,) = common_issues(citations, as_of=AS_OF)
        assert issue.system_number is None
        assert issue.system_name == "Other"
        assert issue.trend == "improving"


class TestCohortRiskTrend:
    """Tests for the month-end cohort risk series."""

    def test_points_only_see_earlier_citations(self):
        citations = [_citation("A", "F880", date(2024, 6, 10))]
        trend = cohort_risk_trend(["A"], citations, months=3, as_of=date(2024, 7, 15))

        assert [p["month"] for p in trend] == ["2024-05", "2024-06", "2024-07"]
        assert trend[1]["month_end"] == date(2024, 6, 30)
        assert [p["risk_score"] for p in trend] == [15, 41, 41]
