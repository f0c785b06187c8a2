from __future__ import annotations

import argparse
import csv
import json
import os
from datetime import datetime
from pathlib import Path

import duckdb
import yaml

from snf_calculators.facility_risk_calculator.calculator import FacilityRiskCalculator
from snf_calculators.facility_risk_calculator.record_processing import (
    records_from_cursor,
    rows_to_facility_metrics,
)

# Facilities whose full factor breakdown is also exported as YAML
YAML_DETAIL_LIMIT = 20

FIELDNAMES = [
    "facility_id",
    "facility_name",
    "snapshot_date",
    "regulatory_score",
    "staffing_score",
    "financial_score",
    "composite_score",
    "risk_label",
    "defaulted_factors",
]


def _get_repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _default_duckdb_path() -> str:
    env_path = os.environ.get("DUCKDB_PATH")
    if env_path:
        return env_path
    return str((_get_repo_root() / "snf_regulatory.duckdb").resolve())


def score_from_duckdb_to_csv(
    *,
    duckdb_path: str,
    output_csv_path: str,
    schema: str = "main_intermediate",
    table: str = "int_facility_snapshots",
    limit: int | None = None,
    missing_id: str = "skip",
) -> int:
    """Read facility snapshots from DuckDB and write risk scores to CSV.

    Returns number of rows written.

    Expected input relation: `{schema}.{table}` with one row per facility
    snapshot and CMS provider column names (facility_id or
    federal_provider_number, snapshot_date, cycle1_total_health_deficiencies,
    fine_total_dollars, ...). Columns the scorers do not read are ignored.
    """

    con = duckdb.connect(str(Path(duckdb_path).expanduser().resolve()))
    try:
        sql = f"SELECT * FROM {schema}.{table}"
        if limit is not None:
            sql += f"\nLIMIT {int(limit)}"

        records = records_from_cursor(con.execute(sql))
        snapshots, stats = rows_to_facility_metrics(records, missing_id=missing_id)

        calculator = FacilityRiskCalculator()

        output_path = Path(output_csv_path).expanduser().resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)

        yaml_dir = output_path.parent / "yaml_details"
        yaml_dir.mkdir(parents=True, exist_ok=True)

        with output_path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
            writer.writeheader()

            for i, snapshot in enumerate(snapshots):
                result = calculator.score(snapshot)

                if i < YAML_DETAIL_LIMIT and snapshot.facility_id:
                    yaml_data = {
                        "facility_id": snapshot.facility_id,
                        "snapshot_date": (
                            snapshot.snapshot_date.isoformat() if snapshot.snapshot_date else None
                        ),
                        "composite": result.composite.model_dump(mode="json"),
                        "categories": [
                            category.model_dump(mode="json")
                            for category in (result.regulatory, result.staffing, result.financial)
                        ],
                    }
                    with (yaml_dir / f"{snapshot.facility_id}.yml").open("w", encoding="utf-8") as yf:
                        yaml.dump(yaml_data, yf, sort_keys=False)

                writer.writerow(
                    {
                        "facility_id": snapshot.facility_id,
                        "facility_name": snapshot.facility_name,
                        "snapshot_date": (
                            snapshot.snapshot_date.isoformat() if snapshot.snapshot_date else None
                        ),
                        "regulatory_score": result.regulatory.score,
                        "staffing_score": result.staffing.score,
                        "financial_score": result.financial.score,
                        "composite_score": result.composite.score,
                        "risk_label": result.composite.label.value,
                        "defaulted_factors": json.dumps(result.details["defaulted_factors"]),
                    }
                )

        skipped = int(stats.get("skipped", 0))
        if skipped:
            total_rows = len(records)
            pct = (skipped / total_rows) * 100 if total_rows > 0 else 0
            print(f"Skipped {skipped}/{total_rows} ({pct:.2f}%) rows without a facility id")

        return len(snapshots)
    finally:
        con.close()


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="snf_calculators.facility_risk_calculator.duckdb_to_csv",
        description=(
            "Read main_intermediate.int_facility_snapshots from DuckDB and write "
            "facility risk scores to CSV."
        ),
    )
    p.add_argument(
        "--duckdb-path",
        default=_default_duckdb_path(),
        help="Path to DuckDB file (default: DUCKDB_PATH env var or repo snf_regulatory.duckdb)",
    )
    p.add_argument(
        "--output-csv",
        required=False,
        help="Output CSV path. Defaults to tmp_exports/YYYYMMDD_HHMMSSffffff_facility_risk_out.csv",
    )
    p.add_argument(
        "--schema",
        default="main_intermediate",
        help="DuckDB schema containing the input relation",
    )
    p.add_argument(
        "--table",
        default="int_facility_snapshots",
        help="DuckDB table/view name containing the input relation",
    )
    p.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional row limit for quick smoke tests",
    )
    p.add_argument(
        "--missing-id",
        choices=["skip", "keep"],
        default="skip",
        help="What to do with rows that have no facility id: skip them or score them anonymously",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)

    output_csv = args.output_csv
    if not output_csv:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S%f")
        output_csv = str(
            Path(__file__).parent / "tmp_exports" / f"{timestamp}_facility_risk_out.csv"
        )

    count = score_from_duckdb_to_csv(
        duckdb_path=args.duckdb_path,
        output_csv_path=output_csv,
        schema=str(args.schema),
        table=str(args.table),
        limit=args.limit,
        missing_id=str(args.missing_id),
    )

    print(f"Wrote {count} rows to {Path(output_csv).expanduser().resolve()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
