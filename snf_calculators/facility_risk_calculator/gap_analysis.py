"""Clinical-system gap classification.

For each clinical system, external regulatory risk (how many cohort facilities
were cited on the system's tags) is fused with internal audit performance (the
average scorecard percentage for the system) into one alert:

    | External tier | Scorecard avg           | Alert     |
    |---------------|-------------------------|-----------|
    | HIGH          | < target or unscored    | URGENT    |
    | HIGH          | >= target               | MONITOR   |
    | MODERATE      | < target or unscored    | ATTENTION |
    | MODERATE      | >= target               | STRONG    |
    | LOW           | < target or unscored    | IMPROVE   |
    | LOW           | >= target               | STRONG    |
    | any           | no scorecard rows       | NO_DATA   |

"Unscored" means scorecard rows exist for the system but none carries a score.
"""

from collections import Counter
from typing import Iterable, Sequence

from pydantic import BaseModel, Field

from snf_calculators.facility_risk_calculator.models import (
    Citation,
    ClinicalSystem,
    CohortGapAnalysis,
    ExternalRisk,
    GapAlert,
    GapAlertType,
    RiskTier,
    ScorecardEntry,
    TagCount,
)
from snf_calculators.facility_risk_calculator.record_processing import round_half_up
from snf_calculators.facility_risk_calculator.table_loader import (
    load_clinical_systems,
    load_tag_to_system,
)
from snf_calculators.facility_risk_calculator.tag_registry import (
    normalize_tag_code,
    resolve_tag,
)

ALERT_PRIORITY = {
    GapAlertType.urgent: 0,
    GapAlertType.attention: 1,
    GapAlertType.monitor: 2,
    GapAlertType.improve: 3,
    GapAlertType.no_data: 4,
    GapAlertType.strong: 5,
}


class GapThresholds(BaseModel):
    """Cohort thresholds for the external risk tier and the scorecard target.

    Attributes:
        high_facility_count: Distinct cited facilities that make a system HIGH
        moderate_facility_count: Distinct cited facilities that make a system MODERATE
        moderate_citation_count: Citation count that also makes a system MODERATE;
            None disables the rule
        severe_scope_codes: Scope/severity letters that count as actual harm or worse
        severe_escalates_to_high: A single severe citation makes the system HIGH
        scorecard_target: Scorecard average at or above which performance is strong
        top_tag_limit: Number of most-cited tags surfaced per system
    """

    high_facility_count: int = Field(default=3, ge=1)
    moderate_facility_count: int = Field(default=1, ge=1)
    moderate_citation_count: int | None = Field(default=None, ge=1)
    severe_scope_codes: str = "GHIJKL"
    severe_escalates_to_high: bool = True
    scorecard_target: float = 75
    top_tag_limit: int = Field(default=3, ge=0)


DEFAULT_THRESHOLDS = GapThresholds()


def is_severe(scope_severity: str | None, thresholds: GapThresholds = DEFAULT_THRESHOLDS) -> bool:
    if not scope_severity:
        return False
    codes = set(thresholds.severe_scope_codes.upper())
    return any(ch in codes for ch in scope_severity.upper())


def external_risk_tier(
    facilities_cited: int,
    citation_count: int = 0,
    has_severe_citation: bool = False,
    thresholds: GapThresholds = DEFAULT_THRESHOLDS,
) -> RiskTier:
    if has_severe_citation and thresholds.severe_escalates_to_high:
        return RiskTier.high
    if facilities_cited >= thresholds.high_facility_count:
        return RiskTier.high
    if facilities_cited >= thresholds.moderate_facility_count:
        return RiskTier.moderate
    if (
        thresholds.moderate_citation_count is not None
        and citation_count >= thresholds.moderate_citation_count
    ):
        return RiskTier.moderate
    return RiskTier.low


def scorecard_average(scores: Iterable[float | None]) -> int | None:
    """Half-up rounded mean of the scores that are present; None when there are none."""
    present = [s for s in scores if s is not None]
    if not present:
        return None
    return int(round_half_up(sum(present) / len(present)))


def gap_alert(
    tier: RiskTier,
    scorecard_avg: float | None,
    has_scorecard_data: bool = True,
    thresholds: GapThresholds = DEFAULT_THRESHOLDS,
) -> GapAlertType:
    """Alert for an external tier and scorecard average (see module table)."""
    if not has_scorecard_data:
        return GapAlertType.no_data

    below_target = scorecard_avg is None or scorecard_avg < thresholds.scorecard_target
    if tier == RiskTier.high:
        return GapAlertType.urgent if below_target else GapAlertType.monitor
    if tier == RiskTier.moderate and below_target:
        return GapAlertType.attention
    if tier == RiskTier.low and below_target:
        return GapAlertType.improve
    return GapAlertType.strong


def latest_scorecard_entries(entries: Iterable[ScorecardEntry]) -> list[ScorecardEntry]:
    """Keep only each facility's most recent scorecard period.

    Undated entries are kept only for a facility with no dated period; entries
    without a facility id are always kept.
    """
    entries = list(entries)
    latest: dict[str, tuple[int, int]] = {}
    for entry in entries:
        if entry.facility_id is None or entry.year is None:
            continue
        period = (entry.year, entry.month or 0)
        if period > latest.get(entry.facility_id, (0, 0)):
            latest[entry.facility_id] = period

    return [
        entry
        for entry in entries
        if entry.facility_id not in latest
        or (
            entry.year is not None
            and (entry.year, entry.month or 0) == latest[entry.facility_id]
        )
    ]


def classify_system(
    system: ClinicalSystem,
    citations: Iterable[Citation],
    scorecards: Iterable[ScorecardEntry],
    thresholds: GapThresholds | None = None,
) -> GapAlert:
    """Classify one clinical system for a cohort.

    Args:
        system: The clinical system and its tag codes
        citations: Cohort citations; only those whose tag maps to the system count
        scorecards: Cohort scorecard entries; only this system's entries count
        thresholds: Tier and target thresholds (defaults when omitted)

    Returns:
        GapAlert with external risk, scorecard average, alert and top tags
    """
    thresholds = thresholds or DEFAULT_THRESHOLDS
    system_tags = set(system.tags)

    tag_counts: Counter[str] = Counter()
    facilities_cited: set[str] = set()
    has_severe = False
    for citation in citations:
        code = normalize_tag_code(citation.tag)
        if code is None or code not in system_tags:
            continue
        tag_counts[code] += 1
        if citation.facility_id is not None:
            facilities_cited.add(citation.facility_id)
        if is_severe(citation.scope_severity, thresholds):
            has_severe = True

    citation_count = sum(tag_counts.values())
    tier = external_risk_tier(len(facilities_cited), citation_count, has_severe, thresholds)

    system_entries = [e for e in scorecards if e.system_number == system.system_number]
    avg = scorecard_average(e.score for e in system_entries)
    alert = gap_alert(tier, avg, bool(system_entries), thresholds)

    # most_common keeps first-seen order among equal counts
    top_tags = []
    for code, count in tag_counts.most_common(thresholds.top_tag_limit):
        definition = resolve_tag(code)
        top_tags.append(
            TagCount(tag=definition.tag, name=definition.name, category=definition.category,
                     count=count)
        )

    return GapAlert(
        system_number=system.system_number,
        system_name=system.system_name,
        external_risk=ExternalRisk(
            level=tier,
            citation_count=citation_count,
            facilities_cited=len(facilities_cited),
            has_severe_citation=has_severe,
        ),
        scorecard_avg=avg,
        has_scorecard_data=bool(system_entries),
        alert=alert,
        top_tags=top_tags,
    )


def system_for_tag(raw_tag: str | None) -> int | None:
    """Clinical system number a citation tag rolls up to, if any."""
    code = normalize_tag_code(raw_tag)
    if code is None:
        return None
    return load_tag_to_system().get(code)


def analyze_cohort_gaps(
    citations: Iterable[Citation],
    scorecards: Iterable[ScorecardEntry],
    systems: Sequence[ClinicalSystem] | None = None,
    thresholds: GapThresholds | None = None,
    facility_ids: Iterable[str] | None = None,
    latest_only: bool = True,
) -> CohortGapAnalysis:
    """Classify every clinical system for a cohort, most urgent first.

    Args:
        citations: Cohort citations
        scorecards: Cohort scorecard entries
        systems: Systems to analyze (defaults to the reference table)
        thresholds: Tier and target thresholds
        facility_ids: Cohort members; defaults to every facility seen in the inputs
        latest_only: Use only each facility's most recent scorecard period
    """
    citations = list(citations)
    scorecards = list(scorecards)
    systems = systems if systems is not None else load_clinical_systems()

    if facility_ids is not None:
        members = set(facility_ids)
    else:
        members = {c.facility_id for c in citations if c.facility_id}
        members |= {s.facility_id for s in scorecards if s.facility_id}

    if latest_only:
        scorecards = latest_scorecard_entries(scorecards)

    analysis = [classify_system(system, citations, scorecards, thresholds) for system in systems]
    analysis.sort(key=lambda a: ALERT_PRIORITY[a.alert])

    return CohortGapAnalysis(facility_count=len(members), analysis=analysis)
