"""Survey risk across a facility cohort (a team or organization).

A facility's survey risk blends four 0-100 sub-scores of its recent citation
history: how recently it was surveyed, the worst scope/severity cited, how
often tags repeat and the citation volume.
"""

import calendar
from collections import Counter, defaultdict
from datetime import date
from typing import Iterable

from snf_calculators.facility_risk_calculator.gap_analysis import system_for_tag
from snf_calculators.facility_risk_calculator.models import (
    Citation,
    CohortRiskSummary,
    CommonIssue,
    FacilitySurveyRisk,
    RiskTier,
    SurveyRiskScore,
)
from snf_calculators.facility_risk_calculator.record_processing import round_half_up
from snf_calculators.facility_risk_calculator.table_loader import load_clinical_systems
from snf_calculators.facility_risk_calculator.tag_registry import normalize_tag_code, resolve_tag

RECENCY_WEIGHT = 0.24
SEVERITY_WEIGHT = 0.29
REPEAT_WEIGHT = 0.24
VOLUME_WEIGHT = 0.23

NO_CITATION_SCORE = 15
# Days since last survey used when a facility has no dated survey
NO_SURVEY_DAYS = 999

IMMEDIATE_JEOPARDY_CODES = "JKL"
ACTUAL_HARM_CODES = "GHI"

# Citations older than this many years are outside a trend point's lookback
TREND_LOOKBACK_YEARS = 3
COMMON_ISSUE_MIN_FACILITIES = 2
RECENT_MONTHS = 6


def risk_level(score: float) -> RiskTier:
    if score > 70:
        return RiskTier.high
    if score > 40:
        return RiskTier.moderate
    return RiskTier.low


def _has_scope(citations: list[Citation], codes: str) -> bool:
    return any(
        c.scope_severity and any(ch in codes for ch in c.scope_severity.upper())
        for c in citations
    )


def _recency_score(days: int) -> int:
    if days <= 90:
        return 100
    if days <= 180:
        return 75
    if days <= 365:
        return 50
    return 25


def _volume_score(count: int) -> int:
    if count >= 20:
        return 100
    if count >= 10:
        return 75
    if count >= 5:
        return 50
    return 25


def _tag_key(citation: Citation) -> str:
    return normalize_tag_code(citation.tag) or (citation.tag or "")


def facility_survey_risk(
    citations: Iterable[Citation], days_since_last_survey: int
) -> SurveyRiskScore:
    """Weighted survey risk for one facility's citation history.

    Args:
        citations: The facility's citations in the lookback period
        days_since_last_survey: Days since its most recent survey

    Returns:
        SurveyRiskScore with a half-up rounded score and its level
    """
    citations = list(citations)
    if not citations:
        return SurveyRiskScore(score=NO_CITATION_SCORE, level=RiskTier.low)

    if _has_scope(citations, IMMEDIATE_JEOPARDY_CODES):
        severity = 100
    elif _has_scope(citations, ACTUAL_HARM_CODES):
        severity = 70
    else:
        severity = 40

    tag_counts = Counter(_tag_key(c) for c in citations)
    repeated = sum(1 for count in tag_counts.values() if count > 1)
    repeat = repeated / len(tag_counts) * 100

    total = (
        _recency_score(days_since_last_survey) * RECENCY_WEIGHT
        + severity * SEVERITY_WEIGHT
        + repeat * REPEAT_WEIGHT
        + _volume_score(len(citations)) * VOLUME_WEIGHT
    )
    return SurveyRiskScore(score=int(round_half_up(total)), level=risk_level(total))


def _group_by_facility(
    facility_ids: list[str], citations: Iterable[Citation]
) -> dict[str, list[Citation]]:
    members = set(facility_ids)
    grouped: dict[str, list[Citation]] = {fid: [] for fid in facility_ids}
    for citation in citations:
        if citation.facility_id in members:
            grouped[citation.facility_id].append(citation)
    return grouped


def _latest_date(citations: list[Citation]) -> date | None:
    return max((c.survey_date for c in citations if c.survey_date), default=None)


def summarize_cohort(
    facility_ids: Iterable[str],
    citations: Iterable[Citation],
    as_of: date | None = None,
) -> CohortRiskSummary:
    """Per-facility survey risk plus the cohort roll-up.

    Citations for facilities outside ``facility_ids`` are ignored.
    """
    as_of = as_of or date.today()
    facility_ids = list(dict.fromkeys(facility_ids))
    if not facility_ids:
        return CohortRiskSummary(facility_count=0)

    grouped = _group_by_facility(facility_ids, citations)

    facilities: list[FacilitySurveyRisk] = []
    distribution = {"low": 0, "moderate": 0, "high": 0}
    for facility_id, facility_citations in grouped.items():
        last_survey = _latest_date(facility_citations)
        days_since = (as_of - last_survey).days if last_survey else NO_SURVEY_DAYS
        risk = facility_survey_risk(facility_citations, days_since)

        facilities.append(
            FacilitySurveyRisk(
                facility_id=facility_id,
                risk_score=risk.score,
                risk_level=risk.level,
                citation_count=len(facility_citations),
                last_survey_date=last_survey,
            )
        )
        distribution[risk.level.value.lower()] += 1

    facilities.sort(key=lambda f: f.risk_score, reverse=True)
    avg_score = int(round_half_up(sum(f.risk_score for f in facilities) / len(facilities)))

    all_citations = [c for group in grouped.values() for c in group]
    most_recent = _latest_date(all_citations)

    return CohortRiskSummary(
        facility_count=len(facility_ids),
        risk_score=avg_score,
        risk_level=risk_level(avg_score),
        distribution=distribution,
        highest_risk_facility=facilities[0],
        facilities=facilities,
        days_since_last_citation=(as_of - most_recent).days if most_recent else None,
        total_citations=len(all_citations),
    )


def _shift_months(day: date, months: int) -> date:
    """Same day ``months`` later (negative for earlier), clamped to month end."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def cohort_risk_trend(
    facility_ids: Iterable[str],
    citations: Iterable[Citation],
    months: int = 12,
    as_of: date | None = None,
) -> list[dict]:
    """Cohort average survey risk at the end of each of the last ``months`` months.

    Each point only sees citations dated within the TREND_LOOKBACK_YEARS before
    that month end, as if the risk had been computed on that day.

    Returns:
        Dicts with 'month' ('YYYY-MM'), 'month_end' and 'risk_score', oldest first
    """
    as_of = as_of or date.today()
    facility_ids = list(dict.fromkeys(facility_ids))
    grouped = _group_by_facility(facility_ids, citations)

    trend = []
    for offset in range(months - 1, -1, -1):
        shifted = _shift_months(as_of.replace(day=1), -offset)
        month_end = _month_end(shifted.year, shifted.month)
        window_start = _shift_months(month_end, -12 * TREND_LOOKBACK_YEARS)

        scores = []
        for facility_citations in grouped.values():
            visible = [
                c for c in facility_citations
                if c.survey_date and window_start <= c.survey_date <= month_end
            ]
            last_survey = _latest_date(visible)
            days_since = (month_end - last_survey).days if last_survey else NO_SURVEY_DAYS
            scores.append(facility_survey_risk(visible, days_since).score)

        avg = int(round_half_up(sum(scores) / len(scores))) if scores else 0
        trend.append(
            {"month": month_end.strftime("%Y-%m"), "month_end": month_end, "risk_score": avg}
        )
    return trend


def common_issues(
    citations: Iterable[Citation],
    as_of: date | None = None,
    min_facilities: int = COMMON_ISSUE_MIN_FACILITIES,
) -> list[CommonIssue]:
    """Tags cited at several cohort facilities, most widespread first.

    Trend compares citations in the last RECENT_MONTHS with older ones:
    'worsening' when recent ones outnumber older ones, 'improving' when there
    are none recently but some before, otherwise 'stable'. Undated citations
    count as older.
    """
    as_of = as_of or date.today()
    recent_cutoff = _shift_months(as_of, -RECENT_MONTHS)
    system_names = {s.system_number: s.system_name for s in load_clinical_systems()}

    by_tag: dict[str, list[Citation]] = defaultdict(list)
    for citation in citations:
        if citation.tag:
            by_tag[_tag_key(citation)].append(citation)

    issues: list[CommonIssue] = []
    for code, tag_citations in by_tag.items():
        facilities = {c.facility_id for c in tag_citations if c.facility_id}
        if len(facilities) < min_facilities:
            continue

        recent = sum(1 for c in tag_citations if c.survey_date and c.survey_date >= recent_cutoff)
        older = len(tag_citations) - recent
        if recent > older:
            trend = "worsening"
        elif recent == 0 and older > 0:
            trend = "improving"
        else:
            trend = "stable"

        definition = resolve_tag(code)
        system_number = system_for_tag(code)
        issues.append(
            CommonIssue(
                tag=definition.tag,
                name=definition.name,
                system_number=system_number,
                system_name=system_names.get(system_number, "Other"),
                facilities_affected=len(facilities),
                total_citations=len(tag_citations),
                trend=trend,
                last_cited=_latest_date(tag_citations),
            )
        )

    issues.sort(key=lambda i: (-i.facilities_affected, -i.total_citations))
    return issues
