"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

# Value amounts and accumulators exceed BIGINT, so they are stored as decimal strings.
SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS event_seq START 1;
CREATE SEQUENCE IF NOT EXISTS transfer_seq START 1;

-- Market header (immutable except resolution) plus strategy-specific scalars
CREATE TABLE IF NOT EXISTS markets (
    address         VARCHAR PRIMARY KEY,
    name            VARCHAR NOT NULL,
    owner           VARCHAR NOT NULL,
    strategy        VARCHAR NOT NULL,
    start_time      BIGINT NOT NULL,
    end_time        BIGINT NOT NULL,
    expiry_time     BIGINT NOT NULL,
    resolution      INTEGER NOT NULL DEFAULT 0,
    value_held      VARCHAR NOT NULL,
    initial_reserve VARCHAR,
    reserve_yes     VARCHAR,
    reserve_no      VARCHAR,
    pot             VARCHAR,
    created_at      BIGINT NOT NULL
);

-- Exactly two pools per market
CREATE TABLE IF NOT EXISTS pools (
    address                 VARCHAR NOT NULL,
    outcome                 VARCHAR NOT NULL,
    total_staked            VARCHAR NOT NULL,
    reward_per_unit_stored  VARCHAR NOT NULL,
    last_accrual_time       BIGINT NOT NULL,
    PRIMARY KEY (address, outcome)
);

-- (account, outcome) -> stake position
CREATE TABLE IF NOT EXISTS positions (
    address                 VARCHAR NOT NULL,
    account                 VARCHAR NOT NULL,
    outcome                 VARCHAR NOT NULL,
    balance                 VARCHAR NOT NULL,
    reward_units_paid       VARCHAR NOT NULL,
    pending_reward_units    VARCHAR NOT NULL,
    shares                  VARCHAR NOT NULL,
    PRIMARY KEY (address, account, outcome)
);

-- Published market events (append-only)
CREATE TABLE IF NOT EXISTS market_events (
    id              BIGINT PRIMARY KEY DEFAULT nextval('event_seq'),
    market          VARCHAR NOT NULL,
    kind            VARCHAR NOT NULL,
    account         VARCHAR,
    amount          VARCHAR,
    event_ts        BIGINT NOT NULL,
    payload         JSON NOT NULL
);

-- Value moved out of markets by custody
CREATE TABLE IF NOT EXISTS transfers (
    id              BIGINT PRIMARY KEY DEFAULT nextval('transfer_seq'),
    market          VARCHAR,
    account         VARCHAR NOT NULL,
    amount          VARCHAR NOT NULL,
    created_at      BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
