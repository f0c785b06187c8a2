from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import duckdb
import pytest
from dagster import build_asset_context

from snf_dagster.assets.benchmarks import compare_benchmarks
from snf_dagster.assets.cohort_risk import summarize_cohort_survey_risk
from snf_dagster.assets.gap_analysis import analyze_clinical_gaps
from snf_dagster.assets.scoring import ScoringConfig, score_facilities
from snf_dagster.assets.trends import score_facility_trends
from snf_dagster.db.bootstrap import ensure_snf_warehouse
from snf_dagster.resources.duckdb_resource import DuckDBResource

HIGH_RISK = {
    "cycle1_total_health_deficiencies": "18",
    "fine_total_dollars": "120000",
    "health_inspection_rating": "1",
    "sff_status": "Y",
}


def _seed(db_path: Path, table: str, rows: list[dict]) -> None:
    con = duckdb.connect(str(db_path))
    try:
        ensure_snf_warehouse(con)
        for row in rows:
            columns = ", ".join(row)
            placeholders = ", ".join("?" for _ in row)
            con.execute(
                f"INSERT INTO main_intermediate.{table} ({columns}) VALUES ({placeholders})",
                list(row.values()),
            )
    finally:
        con.close()


def _fetch(db_path: Path, sql: str, params: list | None = None) -> list[tuple]:
    con = duckdb.connect(str(db_path))
    try:
        return con.execute(sql, params or []).fetchall()
    finally:
        con.close()


def _run_status(db_path: Path, run_id: str, analysis_type: str) -> str | None:
    rows = _fetch(
        db_path,
        "SELECT status FROM main_runs.run_registry WHERE run_id = ? AND analysis_type = ?",
        [run_id, analysis_type],
    )
    return rows[0][0] if rows else None


def test_score_facilities_uses_latest_snapshot(tmp_path: Path) -> None:
    db_path = tmp_path / "test.duckdb"
    _seed(
        db_path,
        "int_facility_snapshots",
        [
            {"facility_id": "015009", "snapshot_date": date(2024, 1, 1)},
            {"facility_id": "015009", "snapshot_date": date(2024, 6, 1), "medicaid_pct": "72", **HIGH_RISK},
            {"facility_id": "015010", "snapshot_date": date(2024, 6, 1)},
            {"facility_id": None, "snapshot_date": date(2024, 6, 1)},
        ],
    )

    ctx = build_asset_context()
    score_facilities(ctx, config=ScoringConfig(), duckdb=DuckDBResource(path=str(db_path)))

    rows = _fetch(
        db_path,
        """
        SELECT facility_id, snapshot_date, regulatory_score, financial_score,
               composite_score, risk_label, components
        FROM main_runs.facility_risk_scores
        WHERE run_id = ?
        ORDER BY facility_id
        """,
        [ctx.run_id],
    )

    assert [r[0] for r in rows] == ["015009", "015010"]
    worst = rows[0]
    assert worst[1] == date(2024, 6, 1)
    assert worst[2] == 100
    assert worst[3] == 55
    assert sorted(json.loads(worst[6])) == ["financial", "regulatory", "staffing"]
    assert rows[1][4] == 10
    assert rows[1][5] == "Low Risk"

    assert _run_status(db_path, ctx.run_id, "scoring") == "success"


def test_score_facility_trends_replays_history(tmp_path: Path) -> None:
    db_path = tmp_path / "test.duckdb"
    _seed(
        db_path,
        "int_facility_snapshots",
        [
            {"facility_id": "015009", "snapshot_date": date(2024, 6, 1)},
            {"facility_id": "015009", "snapshot_date": None, **HIGH_RISK},
            {"facility_id": "015009", "snapshot_date": date(2024, 1, 1), **HIGH_RISK},
        ],
    )

    ctx = build_asset_context(asset_config={"facility_ids": ["015009"]})
    score_facility_trends(ctx, DuckDBResource(path=str(db_path)))

    rows = _fetch(
        db_path,
        """
        SELECT snapshot_date, composite_score, direction, change
        FROM main_analytics.facility_risk_trends
        WHERE batch_id = ?
        ORDER BY snapshot_date
        """,
        [ctx.run_id],
    )

    assert [(r[0], r[1]) for r in rows] == [(date(2024, 1, 1), 50), (date(2024, 6, 1), 10)]
    assert {r[2] for r in rows} == {"decreasing"}
    assert rows[0][3] == pytest.approx(40.0)
    assert _run_status(db_path, ctx.run_id, "trend") == "success"


def test_analyze_clinical_gaps_flags_infection_control(tmp_path: Path) -> None:
    db_path = tmp_path / "test.duckdb"
    _seed(
        db_path,
        "int_facility_citations",
        [
            {"facility_id": "A", "deficiency_tag": "F880", "scope_severity": "D"},
            {"facility_id": "B", "deficiency_tag": "880", "scope_severity": "D"},
            {"facility_id": "C", "deficiency_tag": "F-0880", "scope_severity": "E"},
            {"facility_id": "C", "deficiency_tag": None, "scope_severity": "E"},
        ],
    )
    _seed(
        db_path,
        "int_facility_scorecards",
        [{"facility_id": "A", "system_number": 5, "score": 60, "year": 2024, "month": 6}],
    )

    ctx = build_asset_context(asset_config={})
    analyze_clinical_gaps(ctx, DuckDBResource(path=str(db_path)))

    rows = _fetch(
        db_path,
        """
        SELECT cohort_id, system_number, alert, alert_priority, facility_count, top_tags
        FROM main_analytics.clinical_system_gaps
        WHERE batch_id = ?
        ORDER BY alert_priority, system_number
        """,
        [ctx.run_id],
    )

    assert len(rows) == 7
    cohort_id, system_number, alert, priority, facility_count, top_tags = rows[0]
    assert (cohort_id, system_number, alert, priority) == ("all", 5, "URGENT", 0)
    assert facility_count == 3
    first_tag = json.loads(top_tags)[0]
    assert (first_tag["tag"], first_tag["count"]) == ("F-0880", 3)
    assert {r[2] for r in rows[1:]} == {"NO_DATA"}
    assert _run_status(db_path, ctx.run_id, "gap_analysis") == "success"


def test_analyze_clinical_gaps_empty_cohort_is_no_data(tmp_path: Path) -> None:
    db_path = tmp_path / "test.duckdb"
    _seed(
        db_path,
        "int_facility_citations",
        [{"facility_id": "A", "deficiency_tag": "F880", "scope_severity": "J"}],
    )

    ctx = build_asset_context(asset_config={"cohort_id": "nobody"})
    analyze_clinical_gaps(ctx, DuckDBResource(path=str(db_path)))

    rows = _fetch(
        db_path,
        "SELECT DISTINCT cohort_id, alert, facility_count FROM main_analytics.clinical_system_gaps",
    )
    assert rows == [("nobody", "NO_DATA", 0)]


def test_compare_benchmarks_uses_each_facility_state_and_county(tmp_path: Path) -> None:
    db_path = tmp_path / "test.duckdb"
    snapshot_date = date(2024, 6, 1)
    _seed(
        db_path,
        "int_facility_snapshots",
        [
            {"facility_id": "015009", "state": "CA", "county": "Los Angeles",
             "snapshot_date": snapshot_date, "occupancy_rate": 85.0},
            {"facility_id": "015010", "state": "TX", "county": "Harris",
             "snapshot_date": snapshot_date, "occupancy_rate": 85.0},
            {"facility_id": "015011", "state": "TX", "county": "Harris",
             "snapshot_date": snapshot_date},
            {"facility_id": "015012", "state": "NV", "county": "Clark",
             "snapshot_date": snapshot_date, "occupancy_rate": 85.0},
        ],
    )
    _seed(
        db_path,
        "int_peer_benchmarks",
        [
            {"scope": "national", "metric": "avg_occupancy", "value": 81.0},
            {"scope": "STATE", "state": "CA", "metric": "avg_occupancy", "value": 80.0},
            {"scope": "state", "state": "tx", "metric": "avg_occupancy", "value": 90.0},
            {"scope": "market", "state": "CA", "county": "LOS ANGELES",
             "metric": "avg_occupancy", "value": 78.0},
            {"scope": "market", "state": "TX", "county": "Harris",
             "metric": "avg_occupancy", "value": 88.0},
        ],
    )

    ctx = build_asset_context(asset_config={"comparison_mode": "state"})
    compare_benchmarks(ctx, DuckDBResource(path=str(db_path)))

    rows = _fetch(
        db_path,
        """
        SELECT facility_id, market_value, state_value, national_value,
               formatted, is_favorable, applicable
        FROM main_analytics.benchmark_comparison
        WHERE batch_id = ? AND metric = 'occupancy_rate'
        ORDER BY facility_id
        """,
        [ctx.run_id],
    )

    assert rows == [
        ("015009", 78.0, 80.0, 81.0, "+5%", True, True),
        ("015010", 88.0, 90.0, 81.0, "-5%", False, True),
        # No facility value: not applicable rather than a zero delta
        ("015011", 88.0, 90.0, 81.0, "N/A", None, False),
        # No aggregates for the facility's state
        ("015012", None, None, 81.0, "N/A", None, False),
    ]

    (count,) = _fetch(
        db_path,
        "SELECT COUNT(*) FROM main_analytics.benchmark_comparison WHERE batch_id = ?",
        [ctx.run_id],
    )[0]
    assert count == 24


def test_compare_benchmarks_rejects_unknown_mode(tmp_path: Path) -> None:
    db_path = tmp_path / "test.duckdb"
    ctx = build_asset_context(asset_config={"comparison_mode": "galaxy"})

    with pytest.raises(ValueError):
        compare_benchmarks(ctx, DuckDBResource(path=str(db_path)))

    assert not db_path.exists()


def test_summarize_cohort_survey_risk(tmp_path: Path) -> None:
    db_path = tmp_path / "test.duckdb"
    _seed(
        db_path,
        "int_cohort_facilities",
        [{"cohort_id": "team_north", "facility_id": f} for f in ("A", "B", "C")],
    )
    _seed(
        db_path,
        "int_facility_citations",
        [
            {"facility_id": "A", "deficiency_tag": "F880", "scope_severity": "J", "survey_date": date(2024, 6, 1)},
            {"facility_id": "A", "deficiency_tag": "F880", "scope_severity": "D", "survey_date": date(2024, 6, 1)},
            {"facility_id": "A", "deficiency_tag": "F689", "scope_severity": "D", "survey_date": date(2024, 6, 1)},
            {"facility_id": "B", "deficiency_tag": "F880", "scope_severity": "D", "survey_date": date(2023, 5, 28)},
            {"facility_id": "Z", "deficiency_tag": "F880", "scope_severity": "D", "survey_date": date(2024, 7, 1)},
        ],
    )

    ctx = build_asset_context(
        asset_config={"cohort_id": "team_north", "as_of": "2024-07-01", "min_facilities": 2}
    )
    summarize_cohort_survey_risk(ctx, DuckDBResource(path=str(db_path)))

    risk_rows = _fetch(
        db_path,
        """
        SELECT facility_id, risk_score, risk_level, citation_count, cohort_risk_score
        FROM main_analytics.cohort_survey_risk
        WHERE batch_id = ?
        ORDER BY risk_score DESC
        """,
        [ctx.run_id],
    )
    assert risk_rows == [
        ("A", 71, "HIGH", 3, 36),
        ("B", 23, "LOW", 1, 36),
        ("C", 15, "LOW", 0, 36),
    ]

    issue_rows = _fetch(
        db_path,
        """
        SELECT tag, facilities_affected, system_name
        FROM main_analytics.cohort_common_issues
        WHERE batch_id = ?
        """,
        [ctx.run_id],
    )
    assert issue_rows == [("F-0880", 2, "Infection Control")]
    assert _run_status(db_path, ctx.run_id, "cohort_risk") == "success"


def test_summarize_cohort_survey_risk_requires_cohort(tmp_path: Path) -> None:
    ctx = build_asset_context(asset_config={})

    with pytest.raises(ValueError, match="cohort_id"):
        summarize_cohort_survey_risk(ctx, DuckDBResource(path=str(tmp_path / "test.duckdb")))
