"""Shared test fixtures."""

import tempfile
from pathlib import Path

import pytest

from predsettle.settlement.bonding import BondingCurveMarket
from predsettle.settlement.collaborators import InMemoryCustody, ManualClock
from predsettle.settlement.market import PredictionMarket
from predsettle.storage.db import get_connection, init_schema

DAY = 24 * 60 * 60
ETHER = 10**18
T0 = 1_700_000_000

OWNER = "0x00000000000000000000000000000000000000a1"
ALICE = "0x00000000000000000000000000000000000000aa"
BOB = "0x00000000000000000000000000000000000000bb"
CAROL = "0x00000000000000000000000000000000000000cc"


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def custody():
    return InMemoryCustody()


@pytest.fixture
def window():
    """(start, end, expiry): opens 60s after T0, closes 3 days later, expires 7 days after start."""
    start = T0 + 60
    return start, start + 3 * DAY, start + 7 * DAY


@pytest.fixture
def market(clock, custody, window):
    start, end, expiry = window
    return PredictionMarket.create("Ismail Haniyeh", OWNER, start, end, expiry, clock=clock, custody=custody)


@pytest.fixture
def bonding_market(clock, custody, window):
    start, end, expiry = window
    return BondingCurveMarket.create(
        "Ismail Haniyeh", OWNER, start, end, expiry, clock=clock, custody=custody, initial_reserve=10**24
    )


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    for f in Path(tmp).iterdir():
        f.unlink()
    Path(tmp).rmdir()
