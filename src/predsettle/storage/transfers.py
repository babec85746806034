"""DuckDB-backed custody - records every payout in the transfers table."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import duckdb
import structlog

from predsettle.settlement.errors import TransferFailed

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


class DuckDBCustody:
    """Custody primitive for the CLI. A failed insert surfaces as TransferFailed."""

    def __init__(self, conn: DuckDBPyConnection, market: str | None = None) -> None:
        self.conn = conn
        self.market = market

    def transfer(self, account: str, amount: int) -> None:
        try:
            self.conn.execute(
                "INSERT INTO transfers (market, account, amount, created_at) VALUES (?, ?, ?, ?)",
                [self.market, account, str(amount), int(time.time() * 1000)],
            )
        except duckdb.Error as e:
            log.error("transfer_failed", account=account, amount=amount, error=str(e))
            raise TransferFailed(f"Transfer to {account} failed: {e}") from e


def paid_to(conn: DuckDBPyConnection, account: str, market: str | None = None) -> int:
    """Total value transferred to an account (optionally from one market)."""
    if market:
        rows = conn.execute(
            "SELECT amount FROM transfers WHERE account = ? AND market = ?", [account, market]
        ).fetchall()
    else:
        rows = conn.execute("SELECT amount FROM transfers WHERE account = ?", [account]).fetchall()
    return sum(int(r[0]) for r in rows)
