"""Market state persistence - header, two pools and every position."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from predsettle.models.market import MarketTerms, Outcome, Resolution, Strategy
from predsettle.settlement.bonding import BondingCurveMarket, ReservePair
from predsettle.settlement.collaborators import Clock, Custody
from predsettle.settlement.ledger import OutcomePool, PoolPair, StakeLedger, StakePosition
from predsettle.settlement.market import SettlementMarket
from predsettle.settlement.registry import market_class

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def _opt_str(value: int | None) -> str | None:
    return None if value is None else str(value)


def save_market(conn: DuckDBPyConnection, market: SettlementMarket) -> None:
    """Upsert the full durable state of a market. Positions are never removed from a ledger, only zeroed."""
    terms = market.terms
    bonding = isinstance(market, BondingCurveMarket)
    conn.execute(
        """
        INSERT INTO markets (address, name, owner, strategy, start_time, end_time, expiry_time, resolution,
                             value_held, initial_reserve, reserve_yes, reserve_no, pot, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (address) DO UPDATE SET
            resolution = excluded.resolution,
            value_held = excluded.value_held,
            reserve_yes = excluded.reserve_yes,
            reserve_no = excluded.reserve_no,
            pot = excluded.pot
        """,
        [
            market.address,
            terms.name,
            terms.owner,
            market.strategy.value,
            terms.start_time,
            terms.end_time,
            terms.expiry_time,
            int(terms.resolution),
            str(market.value_held),
            _opt_str(market.initial_reserve) if bonding else None,
            _opt_str(market.reserves.yes) if bonding else None,
            _opt_str(market.reserves.no) if bonding else None,
            _opt_str(market.pot) if bonding else None,
            int(time.time() * 1000),
        ],
    )
    for outcome in Outcome:
        pool = market.ledger.pool(outcome)
        conn.execute(
            "INSERT OR REPLACE INTO pools (address, outcome, total_staked, reward_per_unit_stored, last_accrual_time) VALUES (?, ?, ?, ?, ?)",
            [market.address, outcome.value, str(pool.total_staked), str(pool.reward_per_unit_stored), pool.last_accrual_time],
        )
    rows = [
        [
            market.address,
            account,
            outcome.value,
            str(pos.balance),
            str(pos.reward_units_paid),
            str(pos.pending_reward_units),
            str(pos.shares),
        ]
        for (account, outcome), pos in market.ledger.positions().items()
    ]
    if rows:
        conn.executemany(
            """
            INSERT OR REPLACE INTO positions (address, account, outcome, balance, reward_units_paid, pending_reward_units, shares)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )


def load_market(
    conn: DuckDBPyConnection,
    address: str,
    *,
    clock: Clock,
    custody: Custody,
) -> SettlementMarket | None:
    """Rebuild a market from storage, or None if the address is unknown."""
    row = conn.execute(
        """
        SELECT name, owner, strategy, start_time, end_time, expiry_time, resolution,
               value_held, initial_reserve, reserve_yes, reserve_no, pot
        FROM markets WHERE address = ?
        """,
        [address],
    ).fetchone()
    if not row:
        return None
    strategy = Strategy(row[2])
    terms = MarketTerms(
        name=row[0],
        owner=row[1],
        start_time=row[3],
        end_time=row[4],
        expiry_time=row[5],
        resolution=Resolution(row[6]),
        strategy=strategy,
    )
    cls = market_class(strategy)
    kwargs: dict[str, Any] = {}
    if strategy is Strategy.BONDING_CURVE:
        kwargs["initial_reserve"] = int(row[8])
    market = cls(terms, clock=clock, custody=custody, address=address, **kwargs)
    market.value_held = int(row[7])
    if isinstance(market, BondingCurveMarket):
        market.reserves = ReservePair(yes=int(row[9]), no=int(row[10]))
        market.pot = int(row[11])

    pools = PoolPair()
    for outcome, total, stored, last in conn.execute(
        "SELECT outcome, total_staked, reward_per_unit_stored, last_accrual_time FROM pools WHERE address = ?",
        [address],
    ).fetchall():
        pools = pools.with_pool(
            Outcome(outcome),
            OutcomePool(total_staked=int(total), reward_per_unit_stored=int(stored), last_accrual_time=last),
        )
    ledger = StakeLedger(pools)
    for account, outcome, balance, paid, pending, shares in conn.execute(
        """
        SELECT account, outcome, balance, reward_units_paid, pending_reward_units, shares
        FROM positions WHERE address = ? ORDER BY account, outcome
        """,
        [address],
    ).fetchall():
        ledger.set_position(
            account,
            Outcome(outcome),
            StakePosition(
                balance=int(balance),
                reward_units_paid=int(paid),
                pending_reward_units=int(pending),
                shares=int(shares),
            ),
        )
    market.ledger = ledger
    return market


def list_markets(conn: DuckDBPyConnection) -> list[dict[str, Any]]:
    """List stored market headers, oldest first."""
    rows = conn.execute(
        """
        SELECT address, name, owner, strategy, start_time, end_time, expiry_time, resolution, value_held
        FROM markets ORDER BY created_at, address
        """
    ).fetchall()
    columns = ["address", "name", "owner", "strategy", "start_time", "end_time", "expiry_time", "resolution", "value_held"]
    return [dict(zip(columns, r)) for r in rows]
