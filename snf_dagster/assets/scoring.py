from typing import Any, Optional

import polars as pl
from dagster import AssetExecutionContext, Config, asset

from snf_calculators.facility_risk_calculator import FacilityRiskCalculator
from snf_dagster.db.bootstrap import ensure_snf_warehouse, now_utc
from snf_dagster.db.inputs import read_cohort_members, read_snapshots
from snf_dagster.db.run_registry import register_run, update_run_status
from snf_dagster.resources.duckdb_resource import DuckDBResource
from snf_dagster.utils.run_ids import extract_launchpad_config, json_dumps

ANALYSIS_TYPE = "scoring"
CALCULATOR_NAME = "facility_risk_calculator"
MODEL_VERSION = "composite_40_35_25"


class ScoringConfig(Config):
    cohort_id: Optional[str] = None
    group_id: Optional[int] = None
    group_description: Optional[str] = None
    run_description: str = "Facility risk scoring run"
    data_effective: Optional[str] = None
    trigger_source: str = "dagster"
    blueprint_id: Optional[str] = None


@asset
def score_facilities(
    context: AssetExecutionContext, config: ScoringConfig, duckdb: DuckDBResource
) -> None:
    """Score each facility's latest snapshot and write to main_runs.facility_risk_scores."""

    context.log.info(f"Connecting to DuckDB at: {duckdb.path}")
    con = duckdb.get_connection().connect()

    ensure_snf_warehouse(con)

    run_id = context.run_id
    settings = config.model_dump(mode="json")
    record = register_run(
        con,
        run_id=run_id,
        analysis_type=ANALYSIS_TYPE,
        settings=settings,
        run_description=config.run_description,
        calculator=CALCULATOR_NAME,
        model_version=MODEL_VERSION,
        cohort_id=config.cohort_id,
        launchpad_config=extract_launchpad_config(context=context, fallback=settings),
    )

    try:
        calculator = FacilityRiskCalculator()

        members = read_cohort_members(con, config.cohort_id)
        if members is not None:
            context.log.info(f"Cohort {config.cohort_id} has {len(members)} facilities")

        # Scoring always uses the most recent snapshot per facility
        snapshots, stats = read_snapshots(con, facility_ids=members, latest_only=True)

        if stats["skipped"] > 0:
            context.log.warning(f"Skipped {stats['skipped']} snapshots without a facility id.")
        if stats["undated"] > 0:
            context.log.info(f"{stats['undated']} snapshots have no snapshot date.")

        context.log.info(f"Starting scoring for {len(snapshots)} facilities...")

        # Columns must match main_runs.facility_risk_scores definition order
        db_columns = [
            "run_id",
            "facility_id",
            "snapshot_date",
            "regulatory_score",
            "staffing_score",
            "financial_score",
            "composite_score",
            "risk_label",
            "calculator",
            "model_version",
            "run_timestamp",
            "created_at",
            "defaulted_factors",
            "components",
        ]

        created_at = now_utc()
        out_rows: list[dict[str, Any]] = []
        for snapshot in snapshots:
            result = calculator.score(snapshot)
            components = {
                category.category: [c.model_dump(mode="json") for c in category.components]
                for category in (result.regulatory, result.staffing, result.financial)
            }
            out_rows.append(
                {
                    "run_id": run_id,
                    "facility_id": snapshot.facility_id,
                    "snapshot_date": snapshot.snapshot_date,
                    "regulatory_score": result.regulatory.score,
                    "staffing_score": result.staffing.score,
                    "financial_score": result.financial.score,
                    "composite_score": result.composite.score,
                    "risk_label": result.composite.label.value,
                    "calculator": record.calculator,
                    "model_version": record.model_version,
                    "run_timestamp": record.run_timestamp,
                    "created_at": created_at,
                    "defaulted_factors": json_dumps(result.details["defaulted_factors"]),
                    "components": json_dumps(components),
                }
            )

        if out_rows:
            df = pl.DataFrame(out_rows, infer_schema_length=None).select(db_columns)
            con.execute("INSERT OR REPLACE INTO main_runs.facility_risk_scores SELECT * FROM df")

        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="success")
        context.log.info(
            f"Wrote {len(out_rows)} rows to main_runs.facility_risk_scores "
            f"for run_timestamp={record.run_timestamp}"
        )

    except Exception:
        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="failed")
        raise

    finally:
        con.close()
