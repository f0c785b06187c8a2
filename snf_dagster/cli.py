from __future__ import annotations

from pathlib import Path

import typer

from snf_calculators.facility_risk_calculator.tag_registry import format_tag, resolve_tag
from snf_dagster.db.bootstrap import ensure_snf_warehouse
from snf_dagster.resources.duckdb_resource import DuckDBResource

app = typer.Typer(no_args_is_help=True, help="SNF risk CLI - Database and reference utilities")

DEFAULT_DUCKDB_PATH = str(
    (Path(__file__).resolve().parents[1] / "snf_regulatory.duckdb").resolve()
)


@app.command(name="db-bootstrap")
def db_bootstrap(
    duckdb_path: str = typer.Option(DEFAULT_DUCKDB_PATH, "--duckdb-path"),
) -> None:
    """Create the warehouse schemas + tables in DuckDB.

    Creates: `main_intermediate`, `main_runs`, `main_analytics`.
    """

    res = DuckDBResource(path=duckdb_path)
    with res.connection() as con:
        ensure_snf_warehouse(con)

    typer.echo(f"Bootstrapped warehouse at {Path(duckdb_path).resolve()}")


@app.command(name="resolve-tag")
def resolve_tag_command(
    tags: list[str] = typer.Argument(..., help="Citation tags in any format (F689, 0689, 689)"),
) -> None:
    """Print the canonical code, name and category for each tag."""

    for raw in tags:
        definition = resolve_tag(raw)
        typer.echo(f"{raw}\t{format_tag(raw)}\t{definition.name}\t{definition.category}")


if __name__ == "__main__":
    app()
