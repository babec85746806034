"""Prediction market - lifecycle gating, reentrancy guard, atomic operations, accrual settlement."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Iterator

import structlog
from pydantic import ValidationError

from predsettle.models.events import (
    Claimed,
    ExpiredWithdrawal,
    MarketEvent,
    OutcomeResolved,
    StakeRecorded,
)
from predsettle.models.market import MarketTerms, Outcome, Resolution, Strategy
from predsettle.settlement import accrual, lifecycle, payout
from predsettle.settlement.collaborators import Authorize, Clock, Custody, OwnerAuthority
from predsettle.settlement.errors import (
    AlreadyResolvedError,
    MarketValidationError,
    NothingToClaimError,
    OutcomeNotSetError,
    ReentrancyError,
    SettlementError,
    TransferFailed,
    UnauthorizedError,
    ZeroAmountError,
)
from predsettle.settlement.ledger import StakeLedger
from predsettle.settlement.lifecycle import Phase
from predsettle.settlement.units import is_zero_address

log = structlog.get_logger(__name__)

EventListener = Callable[[MarketEvent], None]


def new_address() -> str:
    """Random 20-byte hex address for a freshly created market."""
    return "0x" + (uuid.uuid4().hex + uuid.uuid4().hex)[:40]


def validate_terms(terms: MarketTerms, now: int | None = None) -> None:
    """Raise MarketValidationError for a bad owner or window. `now` enables the future-start check."""
    if is_zero_address(terms.owner):
        raise MarketValidationError("Owner must not be the zero address")
    if now is not None and terms.start_time <= now:
        raise MarketValidationError("Start time must be in the future")
    if terms.start_time >= terms.end_time:
        raise MarketValidationError("Start time must be before end time")
    if terms.end_time >= terms.expiry_time:
        raise MarketValidationError("End time must be before expiry time")


class SettlementMarket(ABC):
    """State and gating shared by both payout strategies.

    Every mutating entry point runs inside `_operation`: a per-market guard rejects a second
    mutating call while one is executing (including one triggered from inside the custody
    transfer), ledger state is snapshotted and restored on any exception, and events are
    only published once the operation has fully succeeded.
    """

    strategy: Strategy = Strategy.ACCRUAL

    def __init__(
        self,
        terms: MarketTerms,
        *,
        clock: Clock,
        custody: Custody,
        authority: Authorize | None = None,
        address: str | None = None,
    ) -> None:
        validate_terms(terms)
        self.terms = terms.model_copy(update={"strategy": self.strategy})
        self.address = address or new_address()
        self.clock = clock
        self.custody = custody
        self.authority = authority or OwnerAuthority(terms.owner)
        self.ledger = StakeLedger()
        self.value_held = 0
        self._executing = False
        self._pending_events: list[MarketEvent] = []
        self._listeners: list[EventListener] = []
        self.log = log.bind(market=self.address, strategy=self.strategy.value)

    @classmethod
    def create(
        cls,
        name: str,
        owner: str,
        start_time: int,
        end_time: int,
        expiry_time: int,
        *,
        clock: Clock,
        custody: Custody,
        authority: Authorize | None = None,
        address: str | None = None,
        **kwargs: Any,
    ) -> SettlementMarket:
        """Validate the window against the clock and build a new market."""
        try:
            terms = MarketTerms(
                name=name,
                owner=owner,
                start_time=start_time,
                end_time=end_time,
                expiry_time=expiry_time,
                strategy=cls.strategy,
            )
        except ValidationError as e:
            raise MarketValidationError(f"Invalid market terms: {e.errors()[0]['msg']}") from e
        validate_terms(terms, now=clock.now())
        market = cls(terms, clock=clock, custody=custody, authority=authority, address=address, **kwargs)
        market.log.info("market_created", name=name, start=start_time, end=end_time, expiry=expiry_time)
        return market

    # ── Operation boundary ─────────────────────────────────────

    @contextmanager
    def _operation(self, name: str, **context: Any) -> Iterator[None]:
        if self._executing:
            self.log.warning("reentrant_call_rejected", operation=name, **context)
            raise ReentrancyError(f"Market is busy; {name} rejected")
        self._executing = True
        snap = self._snapshot()
        self._pending_events = []
        try:
            yield
        except Exception as e:
            self._restore(snap)
            self._pending_events = []
            if isinstance(e, SettlementError):
                self.log.warning(f"{name}_rejected", reason=e.reason, category=e.category, **context)
            else:
                self.log.error(f"{name}_failed", error=str(e), **context)
            raise
        finally:
            self._executing = False
        events, self._pending_events = self._pending_events, []
        for event in events:
            self._publish(event)

    def _snapshot(self) -> dict[str, Any]:
        return {"ledger": self.ledger.snapshot(), "terms": self.terms, "value_held": self.value_held}

    def _restore(self, snap: dict[str, Any]) -> None:
        self.ledger.restore(snap["ledger"])
        self.terms = snap["terms"]
        self.value_held = snap["value_held"]

    def _emit(self, event: MarketEvent) -> None:
        self._pending_events.append(event)

    def _publish(self, event: MarketEvent) -> None:
        """Deliver a committed event. A failing listener cannot undo the operation or starve the rest."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self.log.exception("event_listener_failed", kind=event.kind)

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def _pay(self, account: str, amount: int) -> None:
        """Move value out. Must be the last action of an operation."""
        self.value_held -= amount
        try:
            self.custody.transfer(account, amount)
        except TransferFailed:
            raise
        except Exception as e:
            raise TransferFailed(f"Transfer to {account} failed: {e}") from e

    def _require_stake(self, account: str, amount: int, now: int) -> None:
        lifecycle.require_stake_window(self.terms, now)
        if amount <= 0:
            raise ZeroAmountError("Must send ETH to predict")
        if is_zero_address(account):
            raise UnauthorizedError("The zero address cannot hold a position")

    # ── Shared operations ──────────────────────────────────────

    def resolve(self, caller: str, outcome: Outcome | bool | str) -> None:
        """Set the winning outcome. Authority only, once, between end and expiry."""
        outcome = Outcome.parse(outcome)
        with self._operation("resolve", caller=caller, outcome=outcome.value):
            if not self.authority(caller):
                raise UnauthorizedError(f"{caller} is not authorized to resolve this market")
            if self.terms.resolution is not Resolution.UNSET:
                raise AlreadyResolvedError("Answer already set")
            now = self.clock.now()
            lifecycle.require_resolvable(self.terms, now)
            self.terms = self.terms.model_copy(update={"resolution": Resolution.from_outcome(outcome)})
            self._emit(OutcomeResolved(market=self.address, caller=caller, outcome=outcome, timestamp=now))
            self.log.info("outcome_resolved", outcome=outcome.value)

    def withdraw_expired(self, account: str) -> int:
        """Refund all principal of an unresolved, expired market. Zero balance is a no-op returning 0."""
        with self._operation("withdraw_expired", account=account):
            now = self.clock.now()
            lifecycle.require_expired(self.terms, now)
            yes = self.ledger.clear_position(account, Outcome.YES)
            no = self.ledger.clear_position(account, Outcome.NO)
            amount = yes.balance + no.balance
            if amount == 0:
                self.log.info("expired_withdrawal_noop", account=account)
                return 0
            self._emit(ExpiredWithdrawal(market=self.address, account=account, amount=amount, timestamp=now))
            self.log.info("expired_withdrawal", account=account, amount=amount)
            self._pay(account, amount)
        return amount

    @abstractmethod
    def stake(self, account: str, outcome: Outcome | bool | str, amount: int) -> None:
        """Lock value behind an outcome during the stake window."""
        ...

    @abstractmethod
    def claim(self, account: str) -> int:
        """Pay a winning account after resolution. Returns the amount paid."""
        ...

    # ── Views ──────────────────────────────────────────────────

    @property
    def phase(self) -> Phase:
        return lifecycle.phase_at(self.terms, self.clock.now())

    @property
    def resolution(self) -> Resolution:
        return self.terms.resolution

    @property
    def owner(self) -> str:
        return self.terms.owner

    @property
    def busy(self) -> bool:
        return self._executing

    def prediction_data(self) -> MarketTerms:
        return self.terms.model_copy()

    def correct_outcome(self) -> Outcome:
        outcome = self.terms.resolution.outcome
        if outcome is None:
            raise OutcomeNotSetError("Outcome has not been set yet")
        return outcome

    def total_supply(self, outcome: Outcome | bool | str) -> int:
        return self.ledger.total_staked(Outcome.parse(outcome))

    def balance_of(self, account: str, outcome: Outcome | bool | str) -> int:
        return self.ledger.balance_of(account, Outcome.parse(outcome))

    @abstractmethod
    def preview_payout(self, account: str) -> int:
        ...


class PredictionMarket(SettlementMarket):
    """Binary market settled by lazy time-weighted reward accrual."""

    strategy = Strategy.ACCRUAL

    def _checkpoint(self, account: str, outcome: Outcome, now: int) -> None:
        probe = is_zero_address(account)
        pool, position = accrual.checkpoint(
            self.ledger.pool(outcome),
            None if probe else self.ledger.position(account, outcome),
            now,
            self.terms.end_time,
        )
        self.ledger.set_pool(outcome, pool)
        if position is not None:
            self.ledger.set_position(account, outcome, position)

    def stake(self, account: str, outcome: Outcome | bool | str, amount: int) -> None:
        """Lock `amount` behind `outcome`. Checkpoints before touching balances."""
        outcome = Outcome.parse(outcome)
        with self._operation("stake", account=account, outcome=outcome.value, amount=amount):
            now = self.clock.now()
            self._require_stake(account, amount, now)
            self._checkpoint(account, outcome, now)
            self.ledger.record_stake(account, outcome, amount)
            self.value_held += amount
            self._emit(StakeRecorded(market=self.address, account=account, outcome=outcome, amount=amount, timestamp=now))
            self.log.info("stake_recorded", account=account, outcome=outcome.value, amount=amount)

    def claim(self, account: str) -> int:
        """Pay principal plus time-weighted prize to a winning account. Returns the amount paid."""
        with self._operation("claim", account=account):
            now = self.clock.now()
            lifecycle.require_claimable(self.terms, now)
            winning = self.correct_outcome()
            self._checkpoint(account, winning, now)
            position = self.ledger.position(account, winning)
            if position.pending_reward_units == 0:
                raise NothingToClaimError("Nothing to claim")
            rate = self.reward_rate()
            amount = payout.accrual_payout(position.balance, position.pending_reward_units, rate)
            self.ledger.clear_position(account, winning)
            self._emit(Claimed(market=self.address, account=account, amount=amount, timestamp=now))
            self.log.info(
                "claimed",
                account=account,
                amount=amount,
                principal=position.balance,
                reward_units=position.pending_reward_units,
            )
            self._pay(account, amount)
        return amount

    def earned(self, account: str, outcome: Outcome | bool | str) -> int:
        """Reward units the account would have after a checkpoint now. Read-only."""
        outcome = Outcome.parse(outcome)
        if is_zero_address(account):
            return 0
        return accrual.earned(
            self.ledger.pool(outcome),
            self.ledger.position(account, outcome),
            self.clock.now(),
            self.terms.end_time,
        )

    def reward_per_unit(self, outcome: Outcome | bool | str) -> int:
        """Current pool accumulator as a zero-address probe would see it. Read-only."""
        pool = accrual.accrue_pool(self.ledger.pool(Outcome.parse(outcome)), self.clock.now(), self.terms.end_time)
        return pool.reward_per_unit_stored

    def reward_rate(self, winning: Outcome | bool | str | None = None) -> int:
        win = self.correct_outcome() if winning is None else Outcome.parse(winning)
        return payout.reward_rate(
            self.ledger.total_staked(win.opposite), self.terms.start_time, self.terms.end_time
        )

    def preview_payout(self, account: str, winning: Outcome | bool | str | None = None) -> int:
        """What a claim would pay if `winning` (default: the resolved outcome) wins. Read-only."""
        win = self.correct_outcome() if winning is None else Outcome.parse(winning)
        units = self.earned(account, win)
        if units == 0:
            return 0
        return payout.accrual_payout(self.ledger.balance_of(account, win), units, self.reward_rate(win))
