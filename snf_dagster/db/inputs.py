from __future__ import annotations

from collections import defaultdict
from typing import Any

import duckdb

from snf_calculators.facility_risk_calculator.models import (
    Citation,
    FacilityMetrics,
    ScorecardEntry,
)
from snf_calculators.facility_risk_calculator.record_processing import (
    records_from_cursor,
    rows_to_citations,
    rows_to_facility_metrics,
    rows_to_scorecard_entries,
)

SNAPSHOTS_TABLE = "main_intermediate.int_facility_snapshots"
CITATIONS_TABLE = "main_intermediate.int_facility_citations"
SCORECARDS_TABLE = "main_intermediate.int_facility_scorecards"
BENCHMARKS_TABLE = "main_intermediate.int_peer_benchmarks"
COHORTS_TABLE = "main_intermediate.int_cohort_facilities"


def _member_filter(facility_ids: list[str] | None) -> tuple[str, list[Any]]:
    if facility_ids is None:
        return "", []
    if not facility_ids:
        return " WHERE FALSE", []
    placeholders = ", ".join("?" for _ in facility_ids)
    return f" WHERE facility_id IN ({placeholders})", list(facility_ids)


def read_snapshots(
    con: duckdb.DuckDBPyConnection,
    *,
    facility_ids: list[str] | None = None,
    latest_only: bool = False,
) -> tuple[list[FacilityMetrics], dict[str, Any]]:
    """Facility snapshots, optionally only the most recent one per facility."""
    where, params = _member_filter(facility_ids)
    sql = f"SELECT * FROM {SNAPSHOTS_TABLE}{where}"
    if latest_only:
        sql += (
            " QUALIFY ROW_NUMBER() OVER "
            "(PARTITION BY facility_id ORDER BY snapshot_date DESC NULLS LAST) = 1"
        )
    sql += " ORDER BY facility_id, snapshot_date"
    return rows_to_facility_metrics(records_from_cursor(con.execute(sql, params)))


def read_citations(
    con: duckdb.DuckDBPyConnection, *, facility_ids: list[str] | None = None
) -> tuple[list[Citation], dict[str, Any]]:
    where, params = _member_filter(facility_ids)
    cursor = con.execute(
        f"""
        SELECT facility_id, deficiency_tag, scope_severity, survey_date, correction_status
        FROM {CITATIONS_TABLE}{where}
        ORDER BY survey_date DESC NULLS LAST
        """,
        params,
    )
    return rows_to_citations(records_from_cursor(cursor))


def read_scorecards(
    con: duckdb.DuckDBPyConnection, *, facility_ids: list[str] | None = None
) -> tuple[list[ScorecardEntry], dict[str, Any]]:
    where, params = _member_filter(facility_ids)
    cursor = con.execute(
        f"SELECT facility_id, system_number, score, year, month FROM {SCORECARDS_TABLE}{where}",
        params,
    )
    return rows_to_scorecard_entries(records_from_cursor(cursor))


# (scope, state, county); national rows carry neither, state rows only a state
PeerKey = tuple[str, str | None, str | None]


def _region(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip().upper()
    return text or None


def read_peer_benchmarks(con: duckdb.DuckDBPyConnection) -> dict[PeerKey, dict[str, float]]:
    """Peer aggregates as (scope, state, county) -> metric -> value.

    State and county are matched case-insensitively; columns a scope does not
    use (county for state rows, both for national rows) are ignored.
    """
    peers: dict[PeerKey, dict[str, float]] = defaultdict(dict)
    for scope, state, county, metric, value in con.execute(
        f"SELECT scope, state, county, metric, value FROM {BENCHMARKS_TABLE}"
    ).fetchall():
        if scope is None or metric is None:
            continue
        scope = str(scope).strip().lower()
        if scope == "national":
            key = (scope, None, None)
        elif scope == "state":
            key = (scope, _region(state), None)
        else:
            key = (scope, _region(state), _region(county))
        peers[key][str(metric)] = value
    return dict(peers)


def facility_benchmarks(
    peers: dict[PeerKey, dict[str, float]],
    state: str | None,
    county: str | None,
) -> dict[str, dict[str, float]]:
    """One facility's scope -> metric map: national, its own state and its county market."""
    state = _region(state)
    county = _region(county)
    candidates = {
        "national": ("national", None, None),
        "state": ("state", state, None) if state else None,
        "market": ("market", state, county) if state and county else None,
    }
    return {
        scope: peers[key]
        for scope, key in candidates.items()
        if key is not None and peers.get(key)
    }


def read_cohort_members(con: duckdb.DuckDBPyConnection, cohort_id: str | None) -> list[str] | None:
    """Facility ids in a cohort; None (no filter) when no cohort is given."""
    if cohort_id is None:
        return None
    rows = con.execute(
        f"SELECT DISTINCT facility_id FROM {COHORTS_TABLE} WHERE cohort_id = ? ORDER BY facility_id",
        [cohort_id],
    ).fetchall()
    return [str(r[0]) for r in rows if r[0] is not None]
