"""Lazy reward accrual - time-weighted share of each outcome pool.

The pool accumulator `reward_per_unit_stored` grows by elapsed_seconds * SCALE / total_staked
whenever anyone touches the pool, so an account's accrued units approximate the integral of
balance(t) / total_staked(t) over the time it held stake before end_time. Nothing iterates
over accounts: each position remembers the accumulator value it was last settled at.
"""

from __future__ import annotations

from dataclasses import replace

from predsettle.settlement.ledger import OutcomePool, StakePosition
from predsettle.settlement.units import SCALE


def accrue_pool(pool: OutcomePool, now: int, end_time: int) -> OutcomePool:
    """Bring the pool accumulator current as of min(now, end_time)."""
    applicable = min(now, end_time)
    if applicable < pool.last_accrual_time:
        # Already accrued up to end_time (or a later probe); the accumulator never rewinds
        return pool
    stored = pool.reward_per_unit_stored
    if pool.total_staked > 0:
        stored += (applicable - pool.last_accrual_time) * SCALE // pool.total_staked
    return replace(pool, reward_per_unit_stored=stored, last_accrual_time=applicable)


def settle_position(position: StakePosition, reward_per_unit: int) -> StakePosition:
    """Fold units accrued since the last snapshot into pending units."""
    accrued = position.balance * (reward_per_unit - position.reward_units_paid) // SCALE
    return replace(
        position,
        pending_reward_units=position.pending_reward_units + accrued,
        reward_units_paid=reward_per_unit,
    )


def checkpoint(
    pool: OutcomePool,
    position: StakePosition | None,
    now: int,
    end_time: int,
) -> tuple[OutcomePool, StakePosition | None]:
    """Pure checkpoint. Pass position=None for a pool-only probe (the zero-address case)."""
    pool = accrue_pool(pool, now, end_time)
    if position is None:
        return pool, None
    return pool, settle_position(position, pool.reward_per_unit_stored)


def earned(pool: OutcomePool, position: StakePosition, now: int, end_time: int) -> int:
    """Units a checkpoint at `now` would leave pending, without mutating anything."""
    pool = accrue_pool(pool, now, end_time)
    return settle_position(position, pool.reward_per_unit_stored).pending_reward_units
