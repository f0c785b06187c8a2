"""Data models for the SNF facility risk calculator."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Values read from the external data layer arrive as numbers, string-encoded
# numbers, or not at all. Coercion happens in record_processing, not here.
RawNumber = Union[int, float, str, None]
RawFlag = Union[bool, str, int, None]


def _coerce_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _coerce_identifier(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RiskLabel(str, Enum):
    low = "Low Risk"
    medium = "Medium Risk"
    high = "High Risk"
    severe = "Severe Risk"


class TrendDirection(str, Enum):
    increasing = "increasing"
    decreasing = "decreasing"
    stable = "stable"
    neutral = "neutral"


class RiskTier(str, Enum):
    high = "HIGH"
    moderate = "MODERATE"
    low = "LOW"


class GapAlertType(str, Enum):
    urgent = "URGENT"
    monitor = "MONITOR"
    attention = "ATTENTION"
    improve = "IMPROVE"
    strong = "STRONG"
    no_data = "NO_DATA"


class CitationDefinition(BaseModel):
    """Reference entry for one CMS citation tag.

    Attributes:
        tag: Display tag (e.g., 'F-0880'); for unknown tags, the raw input
        name: Short title
        description: Long description
        category: Free-text grouping (e.g., 'Infection Control')
        prefix: Single-letter prefix ('E', 'F', 'K'); empty for the placeholder
    """

    model_config = ConfigDict(frozen=True)

    tag: str
    name: str
    description: str
    category: str
    prefix: str


class FacilityMetrics(BaseModel):
    """Point-in-time snapshot of a facility's regulatory and operational attributes.

    Field names follow the CMS provider extract. Numeric fields keep whatever the
    data layer supplied (numbers or strings); scorers coerce leniently and fall back
    to secondary field names and documented defaults. Unknown columns are kept.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    facility_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("facility_id", "federal_provider_number", "ccn"),
    )
    facility_name: str | None = None
    state: str | None = None
    county: str | None = None
    snapshot_date: date | None = Field(
        default=None,
        validation_alias=AliasChoices("snapshot_date", "extract_date"),
    )

    # Regulatory
    cycle1_total_health_deficiencies: RawNumber = None
    total_deficiencies: RawNumber = None
    fine_total_dollars: RawNumber = None
    total_penalties_amount: RawNumber = None
    health_inspection_rating: RawNumber = None
    sff_status: RawFlag = None
    special_focus_facility: RawFlag = None

    # Staffing
    rn_turnover: RawNumber = None
    rn_turnover_rate: RawNumber = None
    total_nursing_turnover: RawNumber = None
    total_turnover_rate: RawNumber = None
    staffing_rating: RawNumber = None
    administrator_days_in_role: RawNumber = None

    # Financial
    medicaid_pct: RawNumber = None
    certified_beds: RawNumber = None
    average_residents_per_day: RawNumber = None
    occupancy_rate: RawNumber = None
    qm_rating: RawNumber = None
    quality_rating: RawNumber = None
    vbp_adjustment: RawNumber = None

    # Benchmarked only
    overall_rating: RawNumber = None
    total_nursing_hprd: RawNumber = None
    reported_total_nurse_hrs: RawNumber = None
    rn_hprd: RawNumber = None
    reported_rn_hrs: RawNumber = None

    @field_validator("snapshot_date", mode="before")
    @classmethod
    def _parse_snapshot_date(cls, value: Any) -> date | None:
        return _coerce_date(value)

    @field_validator("facility_id", mode="before")
    @classmethod
    def _parse_facility_id(cls, value: Any) -> str | None:
        return _coerce_identifier(value)

    def get(self, field: str, default: Any = None) -> Any:
        """Read a declared or extra field by name, dict-style."""
        if field in type(self).model_fields:
            return getattr(self, field)
        extra = self.model_extra or {}
        return extra.get(field, default)


class ScoreComponent(BaseModel):
    """One sub-factor contribution to a category score, for the audit trail.

    Attributes:
        factor_id: Stable identifier (e.g., 'deficiencies', 'rn_turnover')
        label: Display label
        facility_value: The value the ladder was evaluated on
        points: Points awarded (never negative, never above max_points)
        max_points: Largest award the factor's ladder can give
        source_field: Record field the value came from, None when defaulted
        defaulted: True when the fixed fallback constant was used
        benchmark_key: Peer-aggregate key for this factor, if benchmarked
    """

    factor_id: str
    label: str
    facility_value: float | None = None
    points: int = Field(..., ge=0)
    max_points: int = Field(..., ge=0)
    source_field: str | None = None
    defaulted: bool = False
    benchmark_key: str | None = None


class CategoryScore(BaseModel):
    """Category risk score (Regulatory, Staffing or Financial)."""

    category: str
    score: int = Field(..., ge=0, le=100)
    components: list[ScoreComponent] = Field(default_factory=list)


class CompositeScore(BaseModel):
    """Weighted combination of the three category scores.

    Attributes:
        score: Rounded weighted score in [0, 100]
        label: Four-tier risk label
        color: Foreground color token for the label tier
        background: Background tint token for the label tier
        regulatory: Regulatory category score used
        staffing: Staffing category score used
        financial: Financial category score used
    """

    score: int = Field(..., ge=0, le=100)
    label: RiskLabel
    color: str
    background: str
    regulatory: int
    staffing: int
    financial: int


class FacilityRiskOutput(BaseModel):
    """Full risk evaluation for one facility snapshot."""

    facility_id: str | None = None
    snapshot_date: date | None = None
    regulatory: CategoryScore
    staffing: CategoryScore
    financial: CategoryScore
    composite: CompositeScore
    details: dict = Field(default_factory=dict)


class BenchmarkComparison(BaseModel):
    """Facility value compared against one peer aggregate.

    When either side is missing or non-numeric the comparison is not applicable:
    ``applicable`` is False, ``delta`` and ``is_favorable`` are None and
    ``formatted`` is 'N/A'. This is distinct from a delta of zero.
    """

    facility_value: float | None = None
    peer_value: float | None = None
    delta: float | None = None
    formatted: str = "N/A"
    is_favorable: bool | None = None
    status: str = "not_applicable"
    applicable: bool = False


class KeyMetricComparison(BaseModel):
    metric: str
    label: str
    format: str
    facility_value: float | None = None
    market: float | None = None
    state: float | None = None
    national: float | None = None
    comparison: BenchmarkComparison


class TrendPoint(BaseModel):
    snapshot_date: date | None = None
    regulatory: int
    staffing: int
    financial: int
    composite: int
    label: RiskLabel


class RiskTrend(BaseModel):
    """Historical composite series and the trailing-window direction.

    Attributes:
        series: One point per dated snapshot, ascending by date
        direction: increasing/decreasing/stable, or neutral with fewer than two points
        change: Absolute difference of window means, one decimal; None when neutral
        current_score: Composite of the latest point, None for an empty series
    """

    series: list[TrendPoint] = Field(default_factory=list)
    direction: TrendDirection = TrendDirection.neutral
    change: float | None = None
    current_score: int | None = None


class Citation(BaseModel):
    """One deficiency row from the survey history.

    Attributes:
        facility_id: CCN of the cited facility
        tag: Citation tag in any normalizable format
        scope_severity: CMS scope/severity letter (A-L), if known
        survey_date: Survey date, if known
        correction_status: Plan-of-correction status, if known
    """

    facility_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("facility_id", "federal_provider_number", "ccn"),
    )
    tag: str | None = Field(
        default=None,
        validation_alias=AliasChoices("tag", "deficiency_tag"),
    )
    scope_severity: str | None = None
    survey_date: date | None = None
    correction_status: str | None = None

    @field_validator("survey_date", mode="before")
    @classmethod
    def _parse_survey_date(cls, value: Any) -> date | None:
        return _coerce_date(value)

    @field_validator("facility_id", "tag", mode="before")
    @classmethod
    def _parse_text(cls, value: Any) -> str | None:
        return _coerce_identifier(value)


class ScorecardEntry(BaseModel):
    """Internal audit result for one clinical system at one facility.

    Attributes:
        facility_id: Facility the scorecard belongs to
        system_number: Clinical system number (1-7)
        score: Percentage score (0-100); None when the system was not scored
        year: Scorecard year, if known
        month: Scorecard month, if known
    """

    facility_id: str | None = None
    system_number: int
    score: float | None = None
    year: int | None = None
    month: int | None = None

    @field_validator("facility_id", mode="before")
    @classmethod
    def _parse_facility_id(cls, value: Any) -> str | None:
        return _coerce_identifier(value)


class ClinicalSystem(BaseModel):
    model_config = ConfigDict(frozen=True)

    system_number: int
    system_name: str
    tags: tuple[str, ...] = ()


class TagCount(BaseModel):
    tag: str
    name: str
    category: str
    count: int


class ExternalRisk(BaseModel):
    level: RiskTier
    citation_count: int = 0
    facilities_cited: int = 0
    has_severe_citation: bool = False


class GapAlert(BaseModel):
    """Gap classification for one clinical system across a cohort."""

    system_number: int
    system_name: str
    external_risk: ExternalRisk
    scorecard_avg: int | None = None
    has_scorecard_data: bool = False
    alert: GapAlertType
    top_tags: list[TagCount] = Field(default_factory=list)


class CohortGapAnalysis(BaseModel):
    facility_count: int
    analysis: list[GapAlert] = Field(default_factory=list)


class SurveyRiskScore(BaseModel):
    score: int
    level: RiskTier


class FacilitySurveyRisk(BaseModel):
    facility_id: str
    risk_score: int
    risk_level: RiskTier
    citation_count: int
    last_survey_date: date | None = None


class CohortRiskSummary(BaseModel):
    """Cohort-wide survey risk roll-up.

    Attributes:
        facility_count: Facilities in the cohort
        risk_score: Half-up rounded mean of facility scores
        risk_level: Level of the mean score
        distribution: Facility counts per level ('low', 'moderate', 'high')
        highest_risk_facility: Facility with the highest score, if any
        facilities: Per-facility scores, highest first
        days_since_last_citation: Days since the most recent dated citation
        total_citations: Citations considered
    """

    facility_count: int
    risk_score: int = 0
    risk_level: RiskTier = RiskTier.low
    distribution: dict[str, int] = Field(
        default_factory=lambda: {"low": 0, "moderate": 0, "high": 0}
    )
    highest_risk_facility: FacilitySurveyRisk | None = None
    facilities: list[FacilitySurveyRisk] = Field(default_factory=list)
    days_since_last_citation: int | None = None
    total_citations: int = 0


class CommonIssue(BaseModel):
    tag: str
    name: str
    system_number: int | None = None
    system_name: str
    facilities_affected: int
    total_citations: int
    trend: str
    last_cited: date | None = None
