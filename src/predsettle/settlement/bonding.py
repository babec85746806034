"""Bonding-curve market - constant-product share pricing, pro-rata payout of the whole pot.

Each pool carries a synthetic reserve of shares. A stake buys shares against that reserve
with a 0.3% constant-product swap, so later stakes get fewer shares per unit of value.
The winners split the entire pooled principal of both sides by share ownership.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from predsettle.models.events import Claimed, StakeRecorded
from predsettle.models.market import MarketTerms, Outcome, Strategy
from predsettle.settlement import lifecycle, payout
from predsettle.settlement.collaborators import Authorize, Clock, Custody
from predsettle.settlement.errors import NothingToClaimError, ZeroAmountError
from predsettle.settlement.market import SettlementMarket
from predsettle.settlement.units import WEI_PER_ETHER

DEFAULT_INITIAL_RESERVE = 1_000_000 * WEI_PER_ETHER
FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000


@dataclass(frozen=True)
class ReservePair:
    yes: int
    no: int

    def __getitem__(self, outcome: Outcome) -> int:
        return self.yes if outcome is Outcome.YES else self.no

    def with_reserve(self, outcome: Outcome, value: int) -> ReservePair:
        if outcome is Outcome.YES:
            return replace(self, yes=value)
        return replace(self, no=value)


def shares_out(amount_in: int, reserve: int, total_staked: int) -> int:
    """Constant-product swap of `amount_in` against a pool whose staked side already includes it.

    `total_staked` is the post-stake total on purpose: with the pre-stake total an empty pool
    would hand its entire reserve to the first staker.
    """
    amount_with_fee = amount_in * FEE_NUMERATOR
    return amount_with_fee * reserve // (total_staked * FEE_DENOMINATOR + amount_with_fee)


class BondingCurveMarket(SettlementMarket):
    strategy = Strategy.BONDING_CURVE

    def __init__(
        self,
        terms: MarketTerms,
        *,
        clock: Clock,
        custody: Custody,
        authority: Authorize | None = None,
        address: str | None = None,
        initial_reserve: int = DEFAULT_INITIAL_RESERVE,
    ) -> None:
        super().__init__(terms, clock=clock, custody=custody, authority=authority, address=address)
        if initial_reserve <= 0:
            raise ValueError("initial_reserve must be positive")
        self.initial_reserve = initial_reserve
        self.reserves = ReservePair(yes=initial_reserve, no=initial_reserve)
        self.pot = 0  # principal staked on both sides; claims do not shrink it

    def _snapshot(self) -> dict[str, Any]:
        snap = super()._snapshot()
        snap["reserves"] = self.reserves
        snap["pot"] = self.pot
        return snap

    def _restore(self, snap: dict[str, Any]) -> None:
        super()._restore(snap)
        self.reserves = snap["reserves"]
        self.pot = snap["pot"]

    def quote(self, amount: int, outcome: Outcome | bool | str) -> int:
        """Shares a stake of `amount` on `outcome` would mint right now."""
        outcome = Outcome.parse(outcome)
        total_after = self.ledger.total_staked(outcome) + amount
        return shares_out(amount, self.reserves[outcome], total_after)

    def stake(self, account: str, outcome: Outcome | bool | str, amount: int) -> None:
        outcome = Outcome.parse(outcome)
        with self._operation("stake", account=account, outcome=outcome.value, amount=amount):
            now = self.clock.now()
            self._require_stake(account, amount, now)
            shares = self.quote(amount, outcome)
            if shares == 0:
                raise ZeroAmountError("Stake too small to mint shares")
            self.reserves = self.reserves.with_reserve(outcome, self.reserves[outcome] - shares)
            self.ledger.record_stake(account, outcome, amount, shares=shares)
            self.pot += amount
            self.value_held += amount
            self._emit(StakeRecorded(market=self.address, account=account, outcome=outcome, amount=amount, timestamp=now))
            self.log.info("stake_recorded", account=account, outcome=outcome.value, amount=amount, shares=shares)

    def shares_outstanding(self, outcome: Outcome | bool | str) -> int:
        outcome = Outcome.parse(outcome)
        return self.initial_reserve - self.reserves[outcome]

    def shares_of(self, account: str, outcome: Outcome | bool | str) -> int:
        return self.ledger.position(account, Outcome.parse(outcome)).shares

    def claim(self, account: str) -> int:
        with self._operation("claim", account=account):
            now = self.clock.now()
            lifecycle.require_claimable(self.terms, now)
            winning = self.correct_outcome()
            position = self.ledger.position(account, winning)
            if position.shares == 0:
                raise NothingToClaimError("Nothing to claim")
            amount = payout.bonding_payout(self.pot, position.shares, self.shares_outstanding(winning))
            self.ledger.clear_position(account, winning)
            self._emit(Claimed(market=self.address, account=account, amount=amount, timestamp=now))
            self.log.info("claimed", account=account, amount=amount, shares=position.shares)
            self._pay(account, amount)
        return amount

    def preview_payout(self, account: str, winning: Outcome | bool | str | None = None) -> int:
        win = self.correct_outcome() if winning is None else Outcome.parse(winning)
        shares = self.shares_of(account, win)
        return payout.bonding_payout(self.pot, shares, self.shares_outstanding(win))
