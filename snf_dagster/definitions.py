from pathlib import Path

import yaml
from dagster import Definitions, define_asset_job

from snf_dagster.assets.benchmarks import compare_benchmarks
from snf_dagster.assets.cohort_risk import summarize_cohort_survey_risk
from snf_dagster.assets.gap_analysis import analyze_clinical_gaps
from snf_dagster.assets.scoring import score_facilities
from snf_dagster.assets.trends import score_facility_trends
from snf_dagster.resources.duckdb_resource import DuckDBResource

CONFIG_DIR = Path(__file__).resolve().parent / "configs"


def _load_config(name: str) -> dict:
    with open(CONFIG_DIR / name) as f:
        return yaml.safe_load(f)


scoring_job = define_asset_job(
    name="scoring_job",
    selection=["score_facilities"],
    description="""
    # Facility Risk Scoring Job

    Scores the latest snapshot of every facility.

    **Steps:**
    1. Reads facility snapshots from `int_facility_snapshots`
    2. Scores Regulatory, Staffing and Financial risk and the weighted composite
    3. Writes results to `main_runs.facility_risk_scores`
    """,
    tags={"team": "analytics", "priority": "high"},
    metadata={
        "owner": "Compliance Analytics",
    },
    config={
        "ops": {
            "score_facilities": {
                "config": {
                    "run_description": "Facility risk scoring run (Manual Trigger)",
                }
            }
        }
    },
)

trend_job = define_asset_job(
    name="trend_job",
    selection=["score_facility_trends"],
    config=_load_config("trend_example.yaml"),
)

gap_analysis_job = define_asset_job(
    name="gap_analysis_job",
    selection=["analyze_clinical_gaps"],
    description="Fuse cohort citation risk with internal audit scorecards per clinical system.",
    config=_load_config("gap_analysis_example.yaml"),
)

benchmark_job = define_asset_job(
    name="benchmark_job",
    selection=["compare_benchmarks"],
    config=_load_config("benchmark_example.yaml"),
)

cohort_risk_job = define_asset_job(
    name="cohort_risk_job",
    selection=["summarize_cohort_survey_risk"],
    config=_load_config("cohort_risk_example.yaml"),
)


definitions = Definitions(
    assets=[
        score_facilities,
        score_facility_trends,
        analyze_clinical_gaps,
        compare_benchmarks,
        summarize_cohort_survey_risk,
    ],
    resources={
        "duckdb": DuckDBResource(),
    },
    jobs=[scoring_job, trend_job, gap_analysis_job, benchmark_job, cohort_risk_job],
)
