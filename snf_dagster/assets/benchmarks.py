from __future__ import annotations

from typing import Any

import polars as pl
from dagster import asset

from snf_calculators.facility_risk_calculator.benchmarks import (
    compare_key_metrics,
    resolve_scope,
)
from snf_dagster.db.bootstrap import ensure_snf_warehouse, now_utc
from snf_dagster.db.inputs import (
    facility_benchmarks,
    read_cohort_members,
    read_peer_benchmarks,
    read_snapshots,
)
from snf_dagster.db.run_registry import register_run, update_run_status
from snf_dagster.resources.duckdb_resource import DuckDBResource
from snf_dagster.utils.run_ids import extract_launchpad_config

ANALYSIS_TYPE = "benchmark"


@asset
def compare_benchmarks(context, duckdb: DuckDBResource) -> None:
    """
    Compare each facility's latest snapshot with peer aggregates into
    main_analytics.benchmark_comparison.

    State peers are those of the facility's own state and market peers those of
    its county, as loaded into int_peer_benchmarks.

    Config:
        comparison_mode: str = "market" | "state" | "national" | "chain" | "custom"
            (default: "state"; chain and custom compare against national)
        cohort_id: str (optional) restrict to one cohort's facilities
    """
    config = context.op_config or {}
    comparison_mode = config.get("comparison_mode", "state")
    cohort_id = config.get("cohort_id")

    # Fail before anything is registered when the mode is unknown
    scope = resolve_scope(comparison_mode)

    con = duckdb.get_connection().connect()

    ensure_snf_warehouse(con)

    run_id = context.run_id
    register_run(
        con,
        run_id=run_id,
        analysis_type=ANALYSIS_TYPE,
        settings=dict(config),
        run_description=f"Peer benchmark comparison ({comparison_mode})",
        cohort_id=cohort_id,
        launchpad_config=extract_launchpad_config(context=context, fallback=config),
    )

    try:
        peers = read_peer_benchmarks(con)

        members = read_cohort_members(con, cohort_id)
        snapshots, _ = read_snapshots(con, facility_ids=members, latest_only=True)

        batch_id = context.run_id
        created_at = now_utc()
        db_columns = [
            "batch_id",
            "facility_id",
            "metric",
            "label",
            "format",
            "comparison_scope",
            "facility_value",
            "market_value",
            "state_value",
            "national_value",
            "delta",
            "formatted",
            "status",
            "is_favorable",
            "applicable",
            "created_at",
        ]

        out_rows: list[dict[str, Any]] = []
        without_peers = 0
        for snapshot in snapshots:
            # State and market aggregates are the facility's own state and county
            benchmarks = facility_benchmarks(peers, snapshot.state, snapshot.county)
            if not benchmarks.get(scope):
                without_peers += 1
            for row in compare_key_metrics(snapshot, benchmarks, mode=comparison_mode):
                out_rows.append(
                    {
                        "batch_id": batch_id,
                        "facility_id": snapshot.facility_id,
                        "metric": row.metric,
                        "label": row.label,
                        "format": row.format,
                        "comparison_scope": scope,
                        "facility_value": row.facility_value,
                        "market_value": row.market,
                        "state_value": row.state,
                        "national_value": row.national,
                        "delta": row.comparison.delta,
                        "formatted": row.comparison.formatted,
                        "status": row.comparison.status,
                        "is_favorable": row.comparison.is_favorable,
                        "applicable": row.comparison.applicable,
                        "created_at": created_at,
                    }
                )

        if without_peers:
            context.log.warning(
                f"{without_peers} facilities have no {scope} peer aggregates; "
                "their comparisons are N/A."
            )

        if out_rows:
            df = pl.DataFrame(out_rows, infer_schema_length=None).select(db_columns)
            con.execute("INSERT OR REPLACE INTO main_analytics.benchmark_comparison SELECT * FROM df")

        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="success")
        context.log.info(
            f"Wrote {len(out_rows)} comparisons for {len(snapshots)} facilities "
            f"against {scope} peers"
        )

    except Exception:
        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="failed")
        raise

    finally:
        con.close()
