from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import duckdb

from snf_dagster.db.bootstrap import now_utc
from snf_dagster.utils.run_ids import (
    REPO_ROOT,
    GitProvenance,
    generate_run_timestamp,
    get_git_provenance,
    json_dumps,
)

RUN_STATUSES = ("started", "success", "failed")


@dataclass(frozen=True)
class RunRecord:
    run_id: str
    run_timestamp: str
    group_id: int | None
    group_description: str | None
    run_description: str | None
    analysis_type: str
    calculator: str | None
    model_version: str | None
    cohort_id: str | None
    data_effective: str | None
    blueprint_yml: dict[str, Any]
    launchpad_config: dict[str, Any]
    git: GitProvenance
    status: str
    trigger_source: str | None
    blueprint_id: str | None
    created_at: datetime
    updated_at: datetime


def allocate_group_id(con: duckdb.DuckDBPyConnection) -> int:
    row = con.execute(
        "SELECT COALESCE(MAX(group_id), 0) + 1 AS next_id FROM main_runs.run_registry"
    ).fetchone()
    return int(row[0])


def insert_run(con: duckdb.DuckDBPyConnection, record: RunRecord) -> None:
    con.execute(
        """
        INSERT INTO main_runs.run_registry (
            run_id,
            run_timestamp,
            status,
            analysis_type,
            run_description,
            group_id,
            group_description,
            calculator,
            model_version,
            cohort_id,
            data_effective,
            created_at,
            updated_at,
            trigger_source,
            git_branch,
            git_commit,
            git_commit_short,
            git_commit_clean,
            blueprint_id,
            blueprint_yml,
            launchpad_config
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            record.run_id,
            record.run_timestamp,
            record.status,
            record.analysis_type,
            record.run_description,
            record.group_id,
            record.group_description,
            record.calculator,
            record.model_version,
            record.cohort_id,
            record.data_effective,
            record.created_at,
            record.updated_at,
            record.trigger_source,
            record.git.branch,
            record.git.commit,
            record.git.commit_short,
            record.git.clean,
            record.blueprint_id,
            json_dumps(record.blueprint_yml),
            json_dumps(record.launchpad_config),
        ],
    )


def update_run_status(
    con: duckdb.DuckDBPyConnection,
    *,
    run_id: str,
    analysis_type: str,
    status: str,
) -> None:
    """Set the status of one asset's registry row.

    Several assets materialized in one Dagster run share a run_id, so rows are
    keyed on (run_id, analysis_type).
    """
    if status not in RUN_STATUSES:
        raise ValueError(f"Unknown run status: {status}")
    con.execute(
        """
        UPDATE main_runs.run_registry
        SET status = ?, updated_at = ?
        WHERE run_id = ? AND analysis_type = ?
        """,
        [status, now_utc(), run_id, analysis_type],
    )


def register_run(
    con: duckdb.DuckDBPyConnection,
    *,
    run_id: str,
    analysis_type: str,
    settings: dict[str, Any],
    run_description: str,
    calculator: str | None = None,
    model_version: str | None = None,
    cohort_id: str | None = None,
    launchpad_config: dict[str, Any] | None = None,
) -> RunRecord:
    """Insert a 'started' registry row for an asset run and return it.

    ``settings`` is the resolved asset config; registry fields (group id,
    descriptions, trigger source, blueprint id) are read from it when present.
    """
    group_id = settings.get("group_id")
    if group_id is None:
        group_id = allocate_group_id(con)

    blueprint_id = settings.get("blueprint_id")
    record = RunRecord(
        run_id=run_id,
        run_timestamp=generate_run_timestamp(),
        group_id=int(group_id),
        group_description=settings.get("group_description"),
        run_description=settings.get("run_description") or run_description,
        analysis_type=analysis_type,
        calculator=calculator,
        model_version=model_version,
        cohort_id=cohort_id,
        data_effective=settings.get("data_effective"),
        blueprint_yml=settings,
        launchpad_config=launchpad_config or {},
        git=get_git_provenance(cwd=str(REPO_ROOT)),
        status="started",
        trigger_source=settings.get("trigger_source") or "dagster",
        blueprint_id=str(blueprint_id) if blueprint_id is not None else None,
        created_at=now_utc(),
        updated_at=now_utc(),
    )
    insert_run(con, record)
    return record
