"""Parquet export of the settlement audit trail (events, transfers, positions)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

# export name -> (table, market column)
EXPORTABLE = {
    "events": ("market_events", "market"),
    "transfers": ("transfers", "market"),
    "positions": ("positions", "address"),
}


def export_to_parquet(
    conn: DuckDBPyConnection,
    output_path: str | Path,
    what: str = "events",
    market: str | None = None,
) -> int:
    """Copy one audit table to a Parquet file, optionally for one market. Returns row count."""
    if what not in EXPORTABLE:
        raise ValueError(f"Unknown export {what!r}; choose from {sorted(EXPORTABLE)}")
    table, market_col = EXPORTABLE[what]
    path = Path(output_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    path_str = str(path).replace("'", "''")
    where = f" WHERE {market_col} = ?" if market else ""
    params = [market] if market else []
    conn.execute(f"COPY (SELECT * FROM {table}{where} ORDER BY 1) TO '{path_str}' (FORMAT PARQUET)", params)
    return conn.execute(f"SELECT COUNT(*) FROM {table}{where}", params).fetchone()[0]


def export_events_to_parquet(
    conn: DuckDBPyConnection,
    output_path: str | Path,
    market: str | None = None,
) -> int:
    return export_to_parquet(conn, output_path, "events", market)
