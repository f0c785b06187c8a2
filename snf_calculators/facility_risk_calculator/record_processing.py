from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from snf_calculators.facility_risk_calculator.models import (
    Citation,
    FacilityMetrics,
    ScorecardEntry,
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

# Strings the extract uses for "no" in flag columns
FALSE_FLAG_STRINGS = {"", "0", "n", "no", "false", "none", "null"}


def parse_int(value: Any) -> int | None:
    """Leading-integer parse: "12", "12.9", " 12 beds" -> 12; garbage -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return math.trunc(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def parse_float(value: Any) -> float | None:
    """Leading-decimal parse: "45.5", "45.5%", " 1e3" -> float; garbage -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) else number
    match = _LEADING_FLOAT.match(str(value))
    return float(match.group(1)) if match else None


def to_number(value: Any) -> float | None:
    """Whole-value numeric conversion; partial strings like "12abc" are rejected."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) else number
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up (2.5 -> 3, -2.5 -> -2), unlike built-in round()."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def parse_flag(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    return str(value).strip().lower() not in FALSE_FLAG_STRINGS


@dataclass(frozen=True)
class FieldReading:
    """A numeric field read from a record, with where the value came from.

    ``defaulted`` is True when neither the primary nor the secondary field gave
    a usable non-zero value and the fixed fallback constant was substituted.
    ``observed`` keeps the parsed primary value (e.g. a real 0) even when it was
    passed over, so callers can tell "real zero" from "missing".
    """

    value: float
    source_field: str | None
    defaulted: bool
    observed: float | None = None


def read_number(
    metrics: FacilityMetrics,
    primary: str,
    secondary: str | None = None,
    *,
    default: float = 0,
    integer: bool = False,
) -> FieldReading:
    """Read ``primary`` (leniently parsed), else ``secondary``, else ``default``.

    Zero counts as absent at every step, so a parsed 0 falls through to the
    next source.
    """
    parser = parse_int if integer else parse_float
    observed = parser(metrics.get(primary))
    if observed:
        return FieldReading(value=observed, source_field=primary, defaulted=False, observed=observed)

    if secondary is not None:
        fallback = to_number(metrics.get(secondary))
        if fallback:
            return FieldReading(
                value=fallback, source_field=secondary, defaulted=False, observed=observed
            )

    return FieldReading(value=default, source_field=None, defaulted=True, observed=observed)


def read_flag(metrics: FacilityMetrics, *fields: str) -> FieldReading:
    """True when any of ``fields`` holds a truthy flag."""
    for field in fields:
        if parse_flag(metrics.get(field)):
            return FieldReading(value=1.0, source_field=field, defaulted=False)
    return FieldReading(value=0.0, source_field=None, defaulted=True)


def records_from_cursor(cursor: Any) -> list[dict[str, Any]]:
    """Turn a DB-API cursor result (e.g. DuckDB) into a list of column dicts."""
    columns = [col[0] for col in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def rows_to_facility_metrics(
    rows: Iterable[Mapping[str, Any]],
    *,
    missing_id: str = "skip",
) -> tuple[list[FacilityMetrics], dict[str, Any]]:
    """
    Convert raw snapshot rows into FacilityMetrics.

    Rows without a facility identifier are skipped (``missing_id="skip"``) or
    kept anonymous (``missing_id="keep"``).
    """
    if missing_id not in {"skip", "keep"}:
        raise ValueError("missing_id must be one of: skip, keep")

    snapshots: list[FacilityMetrics] = []
    skipped = 0
    undated = 0

    for row in rows:
        metrics = FacilityMetrics.model_validate(dict(row))
        if metrics.facility_id is None and missing_id == "skip":
            skipped += 1
            continue
        if metrics.snapshot_date is None:
            undated += 1
        snapshots.append(metrics)

    return snapshots, {"skipped": skipped, "undated": undated}


def rows_to_citations(
    rows: Iterable[Mapping[str, Any]],
) -> tuple[list[Citation], dict[str, Any]]:
    """Convert raw deficiency rows into Citations, skipping rows without a tag."""
    citations: list[Citation] = []
    skipped = 0

    for row in rows:
        citation = Citation.model_validate(dict(row))
        if citation.tag is None:
            skipped += 1
            continue
        citations.append(citation)

    return citations, {"skipped": skipped}


def rows_to_scorecard_entries(
    rows: Iterable[Mapping[str, Any]],
) -> tuple[list[ScorecardEntry], dict[str, Any]]:
    """Convert raw scorecard-system rows into ScorecardEntries.

    Rows whose system number cannot be read are skipped; a missing or
    non-numeric score is kept as None (the system was audited but not scored).
    """
    entries: list[ScorecardEntry] = []
    skipped = 0

    for row in rows:
        system_number = parse_int(row.get("system_number"))
        if system_number is None:
            skipped += 1
            continue
        year = parse_int(row.get("year"))
        month = parse_int(row.get("month"))
        entries.append(
            ScorecardEntry(
                facility_id=row.get("facility_id"),
                system_number=system_number,
                score=parse_float(row.get("score")),
                year=year,
                month=month,
            )
        )

    return entries, {"skipped": skipped}
