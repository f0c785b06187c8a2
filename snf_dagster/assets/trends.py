from __future__ import annotations

from collections import defaultdict
from typing import Any

import polars as pl
from dagster import asset

from snf_calculators.facility_risk_calculator import FacilityRiskCalculator
from snf_calculators.facility_risk_calculator.models import FacilityMetrics
from snf_calculators.facility_risk_calculator.trends import evaluate_trend
from snf_dagster.db.bootstrap import ensure_snf_warehouse, now_utc
from snf_dagster.db.inputs import read_cohort_members, read_snapshots
from snf_dagster.db.run_registry import register_run, update_run_status
from snf_dagster.resources.duckdb_resource import DuckDBResource
from snf_dagster.utils.run_ids import extract_launchpad_config

ANALYSIS_TYPE = "trend"


@asset
def score_facility_trends(context, duckdb: DuckDBResource) -> None:
    """
    Replay the risk scorers over each facility's snapshot history into
    main_analytics.facility_risk_trends.

    Every dated snapshot becomes one row; the facility's trailing-window
    direction and change are repeated on each of its rows.

    Config:
        cohort_id: str (optional) restrict to one cohort's facilities
        facility_ids: list[str] (optional) restrict to these facilities
    """
    config = context.op_config or {}
    cohort_id = config.get("cohort_id")
    facility_ids = config.get("facility_ids")

    con = duckdb.get_connection().connect()

    ensure_snf_warehouse(con)

    run_id = context.run_id
    register_run(
        con,
        run_id=run_id,
        analysis_type=ANALYSIS_TYPE,
        settings=dict(config),
        run_description="Facility risk trend replay",
        calculator="facility_risk_calculator",
        cohort_id=cohort_id,
        launchpad_config=extract_launchpad_config(context=context, fallback=config),
    )

    try:
        members = read_cohort_members(con, cohort_id)
        if facility_ids:
            wanted = [str(f) for f in facility_ids]
            members = wanted if members is None else [m for m in members if m in wanted]

        snapshots, stats = read_snapshots(con, facility_ids=members)
        if stats["undated"] > 0:
            context.log.warning(
                f"Dropping {stats['undated']} undated snapshots from the trend series."
            )

        history: dict[str, list[FacilityMetrics]] = defaultdict(list)
        for snapshot in snapshots:
            history[snapshot.facility_id].append(snapshot)

        calculator = FacilityRiskCalculator()
        batch_id = context.run_id
        created_at = now_utc()

        db_columns = [
            "batch_id",
            "facility_id",
            "snapshot_date",
            "regulatory_score",
            "staffing_score",
            "financial_score",
            "composite_score",
            "risk_label",
            "direction",
            "change",
            "created_at",
        ]

        out_rows: list[dict[str, Any]] = []
        for facility_id, facility_history in history.items():
            trend = evaluate_trend(facility_history, calculator)
            for point in trend.series:
                out_rows.append(
                    {
                        "batch_id": batch_id,
                        "facility_id": facility_id,
                        "snapshot_date": point.snapshot_date,
                        "regulatory_score": point.regulatory,
                        "staffing_score": point.staffing,
                        "financial_score": point.financial,
                        "composite_score": point.composite,
                        "risk_label": point.label.value,
                        "direction": trend.direction.value,
                        "change": trend.change,
                        "created_at": created_at,
                    }
                )

        if out_rows:
            df = pl.DataFrame(out_rows, infer_schema_length=None).select(db_columns)
            con.execute("INSERT OR REPLACE INTO main_analytics.facility_risk_trends SELECT * FROM df")

        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="success")
        context.log.info(
            f"Wrote {len(out_rows)} trend points for {len(history)} facilities "
            "to main_analytics.facility_risk_trends"
        )

    except Exception:
        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="failed")
        raise

    finally:
        con.close()
