"""Dual-pool stake ledger - per-outcome totals and per-account positions."""

from __future__ import annotations

from dataclasses import dataclass, replace

from predsettle.models.market import Outcome


@dataclass(frozen=True)
class OutcomePool:
    """Aggregate of all stakes on one outcome, plus its accrual accumulator."""

    total_staked: int = 0
    reward_per_unit_stored: int = 0  # SCALE fixed point
    last_accrual_time: int = 0


@dataclass(frozen=True)
class StakePosition:
    """One account's stake on one outcome."""

    balance: int = 0
    reward_units_paid: int = 0  # accumulator snapshot at last checkpoint
    pending_reward_units: int = 0
    shares: int = 0  # bonding-curve strategy only


@dataclass(frozen=True)
class PoolPair:
    """Exactly two pools, one per outcome."""

    yes: OutcomePool = OutcomePool()
    no: OutcomePool = OutcomePool()

    def __getitem__(self, outcome: Outcome) -> OutcomePool:
        return self.yes if outcome is Outcome.YES else self.no

    def with_pool(self, outcome: Outcome, pool: OutcomePool) -> PoolPair:
        if outcome is Outcome.YES:
            return replace(self, yes=pool)
        return replace(self, no=pool)


class StakeLedger:
    """Owns both pools and every position of one market. Records balances only; accrual lives in accrual.py."""

    def __init__(self, pools: PoolPair | None = None) -> None:
        self.pools = pools or PoolPair()
        self._positions: dict[tuple[str, Outcome], StakePosition] = {}

    def pool(self, outcome: Outcome) -> OutcomePool:
        return self.pools[outcome]

    def set_pool(self, outcome: Outcome, pool: OutcomePool) -> None:
        self.pools = self.pools.with_pool(outcome, pool)

    def position(self, account: str, outcome: Outcome) -> StakePosition:
        """Return the position, or a zeroed one if the account never staked."""
        return self._positions.get((account, outcome), StakePosition())

    def set_position(self, account: str, outcome: Outcome, position: StakePosition) -> None:
        self._positions[(account, outcome)] = position

    def total_staked(self, outcome: Outcome) -> int:
        return self.pools[outcome].total_staked

    def balance_of(self, account: str, outcome: Outcome) -> int:
        return self.position(account, outcome).balance

    def record_stake(self, account: str, outcome: Outcome, amount: int, shares: int = 0) -> None:
        """Add principal to the pool total and the account balance."""
        pool = self.pool(outcome)
        self.set_pool(outcome, replace(pool, total_staked=pool.total_staked + amount))
        pos = self.position(account, outcome)
        self.set_position(
            account, outcome, replace(pos, balance=pos.balance + amount, shares=pos.shares + shares)
        )

    def clear_position(self, account: str, outcome: Outcome) -> StakePosition:
        """Zero balance, pending units and shares; release the balance from the pool. Returns the old position."""
        key = (account, outcome)
        if key not in self._positions:
            return StakePosition()
        pos = self._positions[key]
        pool = self.pool(outcome)
        self.set_pool(outcome, replace(pool, total_staked=pool.total_staked - pos.balance))
        self._positions[(account, outcome)] = replace(
            pos, balance=0, pending_reward_units=0, shares=0
        )
        return pos

    def positions(self) -> dict[tuple[str, Outcome], StakePosition]:
        return dict(self._positions)

    def accounts(self) -> list[str]:
        seen: dict[str, None] = {}
        for account, _ in self._positions:
            seen.setdefault(account, None)
        return list(seen)

    def sum_balances(self, outcome: Outcome) -> int:
        return sum(p.balance for (_, o), p in self._positions.items() if o is outcome)

    def snapshot(self) -> tuple[PoolPair, dict[tuple[str, Outcome], StakePosition]]:
        # Pools and positions are frozen, so shallow copies are full snapshots
        return self.pools, dict(self._positions)

    def restore(self, snap: tuple[PoolPair, dict[tuple[str, Outcome], StakePosition]]) -> None:
        self.pools, positions = snap
        self._positions = dict(positions)
