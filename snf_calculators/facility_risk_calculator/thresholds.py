"""Threshold ladders for the category risk scorers.

Every sub-factor awards points through a hand-tuned step function. A ladder is
an ordered list of (threshold, points) steps evaluated top-down; the first step
whose comparison holds wins, and a value that matches no step earns 0.

    >>> DEFICIENCY_LADDER.points(12)
    25
    >>> OCCUPANCY_LADDER.points(72)
    12
"""

import operator
from dataclasses import dataclass
from typing import Callable

_COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "gt": operator.gt,
    "lt": operator.lt,
    "eq": operator.eq,
}


@dataclass(frozen=True)
class ThresholdLadder:
    """Ordered (threshold, points) steps with first-match-wins semantics.

    Attributes:
        steps: (threshold, points) pairs in evaluation order
        compare: 'gt' (value > threshold), 'lt' (value < threshold) or
            'eq' (value == threshold, used for star ratings)
    """

    steps: tuple[tuple[float, int], ...]
    compare: str = "gt"

    def __post_init__(self) -> None:
        if self.compare not in _COMPARATORS:
            raise ValueError(f"Unknown ladder comparison: {self.compare}")
        if any(points < 0 for _, points in self.steps):
            raise ValueError("Ladder points must be non-negative")

    @property
    def max_points(self) -> int:
        return max((points for _, points in self.steps), default=0)

    def points(self, value: float | None) -> int:
        if value is None:
            return 0
        matches = _COMPARATORS[self.compare]
        for threshold, points in self.steps:
            if matches(value, threshold):
                return points
        return 0


# Regulatory
DEFICIENCY_LADDER = ThresholdLadder(((15, 35), (10, 25), (5, 15), (0, 5)))
PENALTY_LADDER = ThresholdLadder(((100_000, 30), (50_000, 22), (10_000, 12), (0, 5)))
INSPECTION_RATING_LADDER = ThresholdLadder(((1, 25), (2, 18), (3, 10), (4, 3)), compare="eq")
SFF_POINTS = 10

# Staffing
RN_TURNOVER_LADDER = ThresholdLadder(((60, 30), (45, 22), (30, 12), (20, 5)))
TOTAL_TURNOVER_LADDER = ThresholdLadder(((70, 25), (50, 18), (35, 10), (25, 4)))
STAFFING_RATING_LADDER = ThresholdLadder(((1, 25), (2, 18), (3, 8), (4, 2)), compare="eq")
ADMIN_TENURE_LADDER = ThresholdLadder(((90, 20), (180, 14), (365, 7)), compare="lt")

# Financial
MEDICAID_LADDER = ThresholdLadder(((80, 35), (70, 25), (60, 15), (50, 8)))
OCCUPANCY_LADDER = ThresholdLadder(((60, 30), (70, 22), (80, 12), (85, 5)), compare="lt")
QUALITY_RATING_LADDER = ThresholdLadder(((1, 20), (2, 14), (3, 6)), compare="eq")
VBP_LADDER = ThresholdLadder(((0.98, 15), (0.99, 10), (1.0, 5)), compare="lt")

# Fallbacks when neither the primary nor the secondary field has a usable value
DEFAULT_MEDICAID_PCT = 60
DEFAULT_ADMIN_DAYS = 365
DEFAULT_VBP_ADJUSTMENT = 1
DEFAULT_CERTIFIED_BEDS = 1

CATEGORY_CAP = 100

# Composite weights: regulatory, staffing, financial
COMPOSITE_WEIGHTS = (0.40, 0.35, 0.25)

# Upper bounds (inclusive) for each risk label; anything above the last is Severe
LABEL_BOUNDARIES = (25, 50, 75)
