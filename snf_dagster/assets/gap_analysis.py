from __future__ import annotations

from typing import Any

import polars as pl
from dagster import asset

from snf_calculators.facility_risk_calculator.gap_analysis import (
    ALERT_PRIORITY,
    GapThresholds,
    analyze_cohort_gaps,
)
from snf_calculators.facility_risk_calculator.models import GapAlertType
from snf_dagster.db.bootstrap import ensure_snf_warehouse, now_utc
from snf_dagster.db.inputs import read_citations, read_cohort_members, read_scorecards
from snf_dagster.db.run_registry import register_run, update_run_status
from snf_dagster.resources.duckdb_resource import DuckDBResource
from snf_dagster.utils.run_ids import extract_launchpad_config, json_dumps

ANALYSIS_TYPE = "gap_analysis"
# cohort_id stored for runs over every facility in the warehouse
ALL_FACILITIES = "all"


@asset
def analyze_clinical_gaps(context, duckdb: DuckDBResource) -> None:
    """
    Classify every clinical system for a cohort into main_analytics.clinical_system_gaps.

    Config:
        cohort_id: str (optional; every facility when omitted)
        thresholds: dict (optional) overrides for high_facility_count,
            moderate_facility_count, moderate_citation_count, severe_scope_codes,
            severe_escalates_to_high, scorecard_target, top_tag_limit
        latest_only: bool = True, use only each facility's latest scorecard period
    """
    config = context.op_config or {}
    cohort_id = config.get("cohort_id")
    thresholds = GapThresholds(**(config.get("thresholds") or {}))
    latest_only = bool(config.get("latest_only", True))

    con = duckdb.get_connection().connect()

    ensure_snf_warehouse(con)

    run_id = context.run_id
    register_run(
        con,
        run_id=run_id,
        analysis_type=ANALYSIS_TYPE,
        settings={**config, "thresholds": thresholds.model_dump()},
        run_description=f"Clinical gap analysis for cohort {cohort_id or ALL_FACILITIES}",
        cohort_id=cohort_id,
        launchpad_config=extract_launchpad_config(context=context, fallback=config),
    )

    try:
        members = read_cohort_members(con, cohort_id)
        if members is not None and not members:
            context.log.warning(f"Cohort {cohort_id} has no facilities.")

        citations, citation_stats = read_citations(con, facility_ids=members)
        scorecards, scorecard_stats = read_scorecards(con, facility_ids=members)
        if citation_stats["skipped"] > 0:
            context.log.warning(f"Skipped {citation_stats['skipped']} citations without a tag.")
        if scorecard_stats["skipped"] > 0:
            context.log.warning(
                f"Skipped {scorecard_stats['skipped']} scorecard rows without a system number."
            )

        result = analyze_cohort_gaps(
            citations,
            scorecards,
            thresholds=thresholds,
            facility_ids=members,
            latest_only=latest_only,
        )

        batch_id = context.run_id
        created_at = now_utc()
        db_columns = [
            "batch_id",
            "cohort_id",
            "system_number",
            "system_name",
            "external_risk",
            "citation_count",
            "facilities_cited",
            "has_severe_citation",
            "scorecard_avg",
            "alert",
            "alert_priority",
            "facility_count",
            "top_tags",
            "created_at",
        ]

        out_rows: list[dict[str, Any]] = [
            {
                "batch_id": batch_id,
                "cohort_id": cohort_id or ALL_FACILITIES,
                "system_number": gap.system_number,
                "system_name": gap.system_name,
                "external_risk": gap.external_risk.level.value,
                "citation_count": gap.external_risk.citation_count,
                "facilities_cited": gap.external_risk.facilities_cited,
                "has_severe_citation": gap.external_risk.has_severe_citation,
                "scorecard_avg": gap.scorecard_avg,
                "alert": gap.alert.value,
                "alert_priority": ALERT_PRIORITY[gap.alert],
                "facility_count": result.facility_count,
                "top_tags": json_dumps([t.model_dump() for t in gap.top_tags]),
                "created_at": created_at,
            }
            for gap in result.analysis
        ]

        if out_rows:
            df = pl.DataFrame(out_rows, infer_schema_length=None).select(db_columns)
            con.execute("INSERT OR REPLACE INTO main_analytics.clinical_system_gaps SELECT * FROM df")

        urgent = [g.system_name for g in result.analysis if g.alert == GapAlertType.urgent]
        if urgent:
            context.log.warning(f"URGENT gaps: {', '.join(urgent)}")

        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="success")
        context.log.info(
            f"Wrote {len(out_rows)} system gaps for {result.facility_count} facilities "
            "to main_analytics.clinical_system_gaps"
        )

    except Exception:
        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="failed")
        raise

    finally:
        con.close()
