from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import duckdb
from dagster import ConfigurableResource


@dataclass(frozen=True)
class DuckDBConnection:
    path: Path

    def connect(self) -> duckdb.DuckDBPyConnection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return duckdb.connect(str(self.path))


class DuckDBResource(ConfigurableResource):
    """Dagster resource for connecting to the SNF regulatory DuckDB warehouse."""

    path: str = str((Path(__file__).resolve().parents[2] / "snf_regulatory.duckdb").resolve())

    def get_connection(self) -> DuckDBConnection:
        return DuckDBConnection(path=Path(self.path).expanduser().resolve())

    @contextmanager
    def connection(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Connection that is closed on exit, for one-off CLI and maintenance work."""
        con = self.get_connection().connect()
        try:
            yield con
        finally:
            con.close()
