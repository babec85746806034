"""Payout calculator - converts accrued reward units plus principal into a transferable amount."""

from __future__ import annotations


def reward_rate(losing_total: int, start_time: int, end_time: int) -> int:
    """Losing pool value spread evenly over each second of the open window (floor)."""
    duration = end_time - start_time
    if duration <= 0:
        raise ValueError("Market window must have positive duration")
    return losing_total // duration


def accrual_payout(balance: int, earned_units: int, rate: int) -> int:
    """Principal back plus the account's time-weighted cut of the prize."""
    return balance + earned_units * rate


def bonding_payout(pot: int, shares: int, shares_outstanding: int) -> int:
    """Pro-rata split of the whole pot by winning-side share ownership."""
    if shares_outstanding <= 0:
        return 0
    return pot * shares // shares_outstanding
