from __future__ import annotations

from datetime import date
from typing import Any

import polars as pl
from dagster import asset

from snf_calculators.facility_risk_calculator.cohort_risk import (
    COMMON_ISSUE_MIN_FACILITIES,
    common_issues,
    summarize_cohort,
)
from snf_dagster.db.bootstrap import ensure_snf_warehouse, now_utc
from snf_dagster.db.inputs import read_citations, read_cohort_members
from snf_dagster.db.run_registry import register_run, update_run_status
from snf_dagster.resources.duckdb_resource import DuckDBResource
from snf_dagster.utils.run_ids import extract_launchpad_config

ANALYSIS_TYPE = "cohort_risk"


@asset
def summarize_cohort_survey_risk(context, duckdb: DuckDBResource) -> None:
    """
    Per-facility survey risk and repeated citation tags for one cohort, into
    main_analytics.cohort_survey_risk and main_analytics.cohort_common_issues.

    Config:
        cohort_id: str (required)
        as_of: str = today (ISO date the recency scores are measured from)
        min_facilities: int = 2 (facilities a tag must be cited at to be common)
    """
    config = context.op_config or {}
    cohort_id = config.get("cohort_id")
    if not cohort_id:
        raise ValueError("summarize_cohort_survey_risk requires op config: cohort_id")

    as_of = date.fromisoformat(str(config["as_of"])) if config.get("as_of") else date.today()
    min_facilities = int(config.get("min_facilities", COMMON_ISSUE_MIN_FACILITIES))

    con = duckdb.get_connection().connect()

    ensure_snf_warehouse(con)

    run_id = context.run_id
    register_run(
        con,
        run_id=run_id,
        analysis_type=ANALYSIS_TYPE,
        settings={**config, "as_of": as_of.isoformat()},
        run_description=f"Cohort survey risk for {cohort_id}",
        cohort_id=cohort_id,
        launchpad_config=extract_launchpad_config(context=context, fallback=config),
    )

    try:
        members = read_cohort_members(con, cohort_id) or []
        if not members:
            context.log.warning(f"Cohort {cohort_id} has no facilities.")

        citations, _ = read_citations(con, facility_ids=members)
        summary = summarize_cohort(members, citations, as_of=as_of)
        issues = common_issues(citations, as_of=as_of, min_facilities=min_facilities)

        batch_id = context.run_id
        created_at = now_utc()

        risk_rows: list[dict[str, Any]] = [
            {
                "batch_id": batch_id,
                "cohort_id": cohort_id,
                "facility_id": facility.facility_id,
                "risk_score": facility.risk_score,
                "risk_level": facility.risk_level.value,
                "citation_count": facility.citation_count,
                "last_survey_date": facility.last_survey_date,
                "cohort_risk_score": summary.risk_score,
                "cohort_risk_level": summary.risk_level.value,
                "created_at": created_at,
            }
            for facility in summary.facilities
        ]
        issue_rows: list[dict[str, Any]] = [
            {
                "batch_id": batch_id,
                "cohort_id": cohort_id,
                "tag": issue.tag,
                "name": issue.name,
                "system_number": issue.system_number,
                "system_name": issue.system_name,
                "facilities_affected": issue.facilities_affected,
                "total_citations": issue.total_citations,
                "trend": issue.trend,
                "last_cited": issue.last_cited,
                "created_at": created_at,
            }
            for issue in issues
        ]

        if risk_rows:
            risk_df = pl.DataFrame(risk_rows, infer_schema_length=None)
            con.execute(
                "INSERT OR REPLACE INTO main_analytics.cohort_survey_risk SELECT * FROM risk_df"
            )
        if issue_rows:
            issue_df = pl.DataFrame(issue_rows, infer_schema_length=None)
            con.execute(
                "INSERT OR REPLACE INTO main_analytics.cohort_common_issues SELECT * FROM issue_df"
            )

        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="success")
        context.log.info(
            f"Cohort {cohort_id}: risk {summary.risk_score} ({summary.risk_level.value}), "
            f"{len(risk_rows)} facilities, {len(issue_rows)} common issues"
        )

    except Exception:
        update_run_status(con, run_id=run_id, analysis_type=ANALYSIS_TYPE, status="failed")
        raise

    finally:
        con.close()
