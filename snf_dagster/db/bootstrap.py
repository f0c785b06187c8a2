from __future__ import annotations

from datetime import UTC, datetime

import duckdb


def ensure_core_schemas(con: duckdb.DuckDBPyConnection) -> None:
    con.execute("CREATE SCHEMA IF NOT EXISTS main_intermediate")
    con.execute("CREATE SCHEMA IF NOT EXISTS main_runs")
    con.execute("CREATE SCHEMA IF NOT EXISTS main_analytics")


def ensure_run_registry(con: duckdb.DuckDBPyConnection) -> None:
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_runs.run_registry (
            run_id VARCHAR,
            run_timestamp VARCHAR,
            group_id BIGINT,
            group_description VARCHAR,
            run_description VARCHAR,
            analysis_type VARCHAR,
            calculator VARCHAR,
            model_version VARCHAR,
            cohort_id VARCHAR,
            data_effective VARCHAR,
            blueprint_yml VARCHAR,
            launchpad_config VARCHAR,
            git_branch VARCHAR,
            git_commit VARCHAR,
            git_commit_short VARCHAR,
            git_commit_clean BOOLEAN,
            status VARCHAR,
            trigger_source VARCHAR,
            blueprint_id VARCHAR,
            created_at TIMESTAMP,
            updated_at TIMESTAMP,
            PRIMARY KEY (run_id, analysis_type)
        )
        """
    )

    # Not unique: sub-second runs may share a timestamp
    con.execute(
        "CREATE INDEX IF NOT EXISTS idx_run_registry_timestamp ON main_runs.run_registry (run_timestamp)"
    )


def ensure_input_tables(con: duckdb.DuckDBPyConnection) -> None:
    """Create the intermediate input relations if the upstream models have not.

    Upstream loads may add columns to int_facility_snapshots; the scorers read
    the columns below and ignore the rest.
    """
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_intermediate.int_facility_snapshots (
            facility_id VARCHAR,
            facility_name VARCHAR,
            state VARCHAR,
            county VARCHAR,
            snapshot_date DATE,
            cycle1_total_health_deficiencies VARCHAR,
            total_deficiencies DOUBLE,
            fine_total_dollars VARCHAR,
            total_penalties_amount DOUBLE,
            health_inspection_rating VARCHAR,
            sff_status VARCHAR,
            special_focus_facility BOOLEAN,
            rn_turnover VARCHAR,
            rn_turnover_rate DOUBLE,
            total_nursing_turnover VARCHAR,
            total_turnover_rate DOUBLE,
            staffing_rating VARCHAR,
            administrator_days_in_role VARCHAR,
            medicaid_pct VARCHAR,
            certified_beds VARCHAR,
            average_residents_per_day VARCHAR,
            occupancy_rate DOUBLE,
            qm_rating VARCHAR,
            quality_rating DOUBLE,
            vbp_adjustment VARCHAR,
            overall_rating DOUBLE,
            total_nursing_hprd DOUBLE,
            rn_hprd DOUBLE
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_intermediate.int_facility_citations (
            facility_id VARCHAR,
            deficiency_tag VARCHAR,
            scope_severity VARCHAR,
            survey_date DATE,
            correction_status VARCHAR
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_intermediate.int_facility_scorecards (
            facility_id VARCHAR,
            system_number INTEGER,
            score DOUBLE,
            year INTEGER,
            month INTEGER
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_intermediate.int_peer_benchmarks (
            scope VARCHAR,
            state VARCHAR,
            county VARCHAR,
            metric VARCHAR,
            value DOUBLE
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_intermediate.int_cohort_facilities (
            cohort_id VARCHAR,
            facility_id VARCHAR
        )
        """
    )


def ensure_output_tables(con: duckdb.DuckDBPyConnection) -> None:
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_runs.facility_risk_scores (
            run_id VARCHAR,
            facility_id VARCHAR,
            snapshot_date DATE,
            regulatory_score INTEGER,
            staffing_score INTEGER,
            financial_score INTEGER,
            composite_score INTEGER,
            risk_label VARCHAR,
            calculator VARCHAR,
            model_version VARCHAR,
            run_timestamp VARCHAR,
            created_at TIMESTAMP,
            defaulted_factors JSON,
            components JSON,
            PRIMARY KEY (run_id, facility_id)
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_analytics.facility_risk_trends (
            batch_id VARCHAR,
            facility_id VARCHAR,
            snapshot_date DATE,
            regulatory_score INTEGER,
            staffing_score INTEGER,
            financial_score INTEGER,
            composite_score INTEGER,
            risk_label VARCHAR,
            direction VARCHAR,
            change DOUBLE,
            created_at TIMESTAMP,
            PRIMARY KEY (batch_id, facility_id, snapshot_date)
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_analytics.clinical_system_gaps (
            batch_id VARCHAR,
            cohort_id VARCHAR,
            system_number INTEGER,
            system_name VARCHAR,
            external_risk VARCHAR,
            citation_count INTEGER,
            facilities_cited INTEGER,
            has_severe_citation BOOLEAN,
            scorecard_avg INTEGER,
            alert VARCHAR,
            alert_priority INTEGER,
            facility_count INTEGER,
            top_tags JSON,
            created_at TIMESTAMP,
            PRIMARY KEY (batch_id, cohort_id, system_number)
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_analytics.benchmark_comparison (
            batch_id VARCHAR,
            facility_id VARCHAR,
            metric VARCHAR,
            label VARCHAR,
            format VARCHAR,
            comparison_scope VARCHAR,
            facility_value DOUBLE,
            market_value DOUBLE,
            state_value DOUBLE,
            national_value DOUBLE,
            delta DOUBLE,
            formatted VARCHAR,
            status VARCHAR,
            is_favorable BOOLEAN,
            applicable BOOLEAN,
            created_at TIMESTAMP,
            PRIMARY KEY (batch_id, facility_id, metric)
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_analytics.cohort_survey_risk (
            batch_id VARCHAR,
            cohort_id VARCHAR,
            facility_id VARCHAR,
            risk_score INTEGER,
            risk_level VARCHAR,
            citation_count INTEGER,
            last_survey_date DATE,
            cohort_risk_score INTEGER,
            cohort_risk_level VARCHAR,
            created_at TIMESTAMP,
            PRIMARY KEY (batch_id, cohort_id, facility_id)
        )
        """
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_analytics.cohort_common_issues (
            batch_id VARCHAR,
            cohort_id VARCHAR,
            tag VARCHAR,
            name VARCHAR,
            system_number INTEGER,
            system_name VARCHAR,
            facilities_affected INTEGER,
            total_citations INTEGER,
            trend VARCHAR,
            last_cited DATE,
            created_at TIMESTAMP,
            PRIMARY KEY (batch_id, cohort_id, tag)
        )
        """
    )


def ensure_snf_warehouse(con: duckdb.DuckDBPyConnection) -> None:
    ensure_core_schemas(con)
    ensure_run_registry(con)
    ensure_input_tables(con)
    ensure_output_tables(con)


def now_utc() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)
