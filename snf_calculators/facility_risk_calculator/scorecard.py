"""Internal audit scorecard arithmetic.

An audit scorecard has one section per clinical system; each system has
items with a point value. Reviewers pull a chart sample per item and record
how many charts met the criteria, and the item earns
``max_points / sample_size * charts_met``.
"""

from pydantic import BaseModel, Field

from snf_calculators.facility_risk_calculator.models import ScorecardEntry
from snf_calculators.facility_risk_calculator.record_processing import round_half_up

DEFAULT_SYSTEM_POINTS = 100


class ScorecardItem(BaseModel):
    """One audit item.

    Attributes:
        item_number: Position within the system
        criteria_text: What the reviewer checks
        max_points: Points the item is worth
        charts_met: Charts meeting the criteria; None when not yet reviewed
        sample_size: Charts reviewed; None or 0 means the item earns nothing
        points_earned: Computed by recalculate_scorecard
    """

    item_number: int
    criteria_text: str = ""
    max_points: float = Field(..., ge=0)
    charts_met: int | None = None
    sample_size: int | None = None
    points_earned: float | None = None


class ScorecardSystem(BaseModel):
    system_number: int
    system_name: str
    total_points_possible: float = DEFAULT_SYSTEM_POINTS
    total_points_earned: float | None = None
    items: list[ScorecardItem] = Field(default_factory=list)


class Scorecard(BaseModel):
    facility_id: str | None = None
    year: int | None = None
    month: int | None = None
    systems: list[ScorecardSystem] = Field(default_factory=list)
    total_score: float | None = None


def item_points(max_points: float, charts_met: int | None, sample_size: int | None) -> float:
    """Points earned for one item, to 2 decimal places."""
    if not sample_size:
        return 0
    return round_half_up(max_points / sample_size * (charts_met or 0), 2)


def system_total(items: list[ScorecardItem]) -> float:
    return round_half_up(sum(item.points_earned or 0 for item in items), 2)


def percentage(earned: float | None, possible: float | None) -> float:
    """Earned as a percentage of possible, to 1 decimal place."""
    if not possible:
        return 0
    return round_half_up((earned or 0) / possible * 100, 1)


def recalculate_scorecard(scorecard: Scorecard) -> Scorecard:
    """Return a copy with item points, system totals and total score recomputed.

    Systems without items keep their recorded totals and are left out of
    the total score.
    """
    systems = []
    running_total = 0.0
    for system in scorecard.systems:
        if not system.items:
            systems.append(system.model_copy())
            continue

        items = [
            item.model_copy(
                update={
                    "points_earned": item_points(item.max_points, item.charts_met, item.sample_size)
                }
            )
            for item in system.items
        ]
        total = system_total(items)
        running_total += total
        systems.append(system.model_copy(update={"items": items, "total_points_earned": total}))

    return scorecard.model_copy(
        update={"systems": systems, "total_score": round_half_up(running_total, 2)}
    )


def system_percentages(scorecard: Scorecard) -> list[ScorecardEntry]:
    """Per-system percentage scores, ready for the gap classifier.

    A system with no recorded total is audited but unscored (score None).
    """
    return [
        ScorecardEntry(
            facility_id=scorecard.facility_id,
            system_number=system.system_number,
            score=(
                percentage(system.total_points_earned, system.total_points_possible)
                if system.total_points_earned is not None
                else None
            ),
            year=scorecard.year,
            month=scorecard.month,
        )
        for system in scorecard.systems
    ]
