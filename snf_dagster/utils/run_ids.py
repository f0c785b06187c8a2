"""Provenance recorded on every run registry row.

A row notes when the run started, which checkout produced it and the config it
was launched with.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

REPO_ROOT = Path(__file__).resolve().parents[2]
SHORT_SHA_LENGTH = 7


def generate_run_timestamp(now: datetime | None = None) -> str:
    """YYYYMMDDHHMMSS followed by four digits of ten-thousandths of a second."""
    now = now or datetime.now(UTC)
    return f"{now:%Y%m%d%H%M%S}{now.microsecond // 100:04d}"


@dataclass(frozen=True)
class GitProvenance:
    branch: str | None = None
    commit: str | None = None
    commit_short: str | None = None
    clean: bool | None = None


def _git(*args: str, cwd: str | None) -> str | None:
    try:
        completed = subprocess.run(
            ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    return completed.stdout.strip()


def get_git_provenance(cwd: str | None = None) -> GitProvenance:
    """Branch, commit and cleanliness of the checkout at ``cwd``.

    Untracked files make the tree dirty. Outside a checkout, or without git on
    the path, every field is None.
    """
    commit = _git("rev-parse", "HEAD", cwd=cwd)
    if not commit:
        return GitProvenance()

    status = _git("status", "--porcelain", cwd=cwd)
    return GitProvenance(
        branch=_git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd),
        commit=commit,
        commit_short=commit[:SHORT_SHA_LENGTH],
        clean=None if status is None else not status,
    )


def json_dumps(obj: Any) -> str:
    # Dates and Decimals in configs and breakdowns are written as strings
    return json.dumps(obj, separators=(",", ":"), default=str)


def extract_launchpad_config(
    *,
    context: Any,
    fallback: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """The run config an asset was launched with, else its op config, else ``fallback``."""
    run_config = getattr(getattr(context, "dagster_run", None), "run_config", None)
    if isinstance(run_config, dict) and run_config:
        return run_config

    op_config = getattr(context, "op_config", None)
    if isinstance(op_config, dict) and op_config:
        return {"op_config": op_config}

    return dict(fallback or {})
