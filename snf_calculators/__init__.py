"""SNF calculators - Facility risk scoring and gap-analysis implementations.

Available calculators:
    - FacilityRiskCalculator: Regulatory/Staffing/Financial category scores and
      the weighted composite for skilled-nursing facilities
"""

from snf_calculators.facility_risk_calculator import (
    FacilityMetrics,
    FacilityRiskCalculator,
    FacilityRiskOutput,
)

__all__ = ["FacilityMetrics", "FacilityRiskCalculator", "FacilityRiskOutput"]
