"""SNF Facility Risk Calculator.

Scores skilled-nursing facilities from CMS provider data, compares them
against peer benchmarks, replays scores over snapshot history and classifies
clinical-system gaps across a facility cohort.
Loads the citation registry and clinical systems from reference_tables/.
"""

from snf_calculators.facility_risk_calculator.calculator import FacilityRiskCalculator, composite
from snf_calculators.facility_risk_calculator.models import FacilityMetrics, FacilityRiskOutput
from snf_calculators.facility_risk_calculator.tag_registry import resolve_tag

__all__ = [
    "FacilityMetrics",
    "FacilityRiskCalculator",
    "FacilityRiskOutput",
    "composite",
    "resolve_tag",
]
