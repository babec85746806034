"""Market event append and query - the persisted outward event surface."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from predsettle.models.events import MarketEvent

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_event(conn: DuckDBPyConnection, event: MarketEvent) -> None:
    """Append a single published event."""
    payload = event.model_dump(mode="json")
    account = payload.get("account") or payload.get("caller")
    amount = payload.get("amount")
    conn.execute(
        """
        INSERT INTO market_events (market, kind, account, amount, event_ts, payload)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [event.market, event.kind, account, None if amount is None else str(amount), event.timestamp, json.dumps(payload)],
    )


class EventRecorder:
    """Market listener that persists every published event."""

    def __init__(self, conn: DuckDBPyConnection) -> None:
        self.conn = conn
        self.count = 0

    def __call__(self, event: MarketEvent) -> None:
        append_event(self.conn, event)
        self.count += 1


def list_events(conn: DuckDBPyConnection, market: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
    """Return events (oldest first) as payload dicts, optionally for one market."""
    if market:
        rows = conn.execute(
            "SELECT payload FROM market_events WHERE market = ? ORDER BY id ASC LIMIT ?",
            [market, limit],
        ).fetchall()
    else:
        rows = conn.execute("SELECT payload FROM market_events ORDER BY id ASC LIMIT ?", [limit]).fetchall()
    return [json.loads(r[0]) if isinstance(r[0], str) else r[0] for r in rows]


def log_stats(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Return event log statistics: total count, time range, count by kind and by market."""
    total = conn.execute("SELECT COUNT(*) FROM market_events").fetchone()[0]
    range_row = conn.execute("SELECT MIN(event_ts), MAX(event_ts) FROM market_events").fetchone()
    by_kind = conn.execute(
        "SELECT kind, COUNT(*) AS cnt FROM market_events GROUP BY kind ORDER BY cnt DESC"
    ).fetchall()
    by_market = conn.execute(
        "SELECT market, COUNT(*) AS cnt FROM market_events GROUP BY market ORDER BY cnt DESC LIMIT 20"
    ).fetchall()
    return {
        "total_events": total,
        "min_event_ts": range_row[0],
        "max_event_ts": range_row[1],
        "by_kind": [{"kind": r[0], "count": r[1]} for r in by_kind],
        "by_market": [{"market": r[0], "count": r[1]} for r in by_market],
    }
