"""Scenario replay: drive a fresh market through scripted actions on a manual clock."""

from __future__ import annotations

import json
import tomllib
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, model_validator

from predsettle.models.events import MarketEvent
from predsettle.models.market import Outcome, Strategy
from predsettle.settlement.collaborators import InMemoryCustody, ManualClock
from predsettle.settlement.errors import SettlementError
from predsettle.settlement.market import SettlementMarket
from predsettle.settlement.registry import MarketRegistry
from predsettle.settlement.units import parse_ether

log = structlog.get_logger(__name__)

DAY = 24 * 60 * 60


class MarketWindow(BaseModel):
    """Window offsets in seconds. `start` is relative to scenario time zero, `end`/`expiry` to start."""

    name: str = "scenario"
    start: int = Field(60, gt=0)
    end: int = Field(3 * DAY, gt=0)
    expiry: int = Field(7 * DAY, gt=0)


class Action(BaseModel):
    """One scripted call. `at` is seconds after market start (may be negative)."""

    at: int
    op: Literal["stake", "resolve", "claim", "withdraw_expired"]
    account: str
    outcome: Outcome | None = None
    amount: str | None = None  # ether

    @model_validator(mode="after")
    def _check_fields(self) -> Action:
        if self.op == "stake" and (self.outcome is None or self.amount is None):
            raise ValueError("stake needs outcome and amount")
        if self.op == "resolve" and self.outcome is None:
            raise ValueError("resolve needs outcome")
        return self


class Scenario(BaseModel):
    owner: str = "0x00000000000000000000000000000000000000a1"
    t0: int = 1_700_000_000
    strategy: Strategy = Strategy.ACCRUAL
    initial_reserve_ether: str = "1000000"
    market: MarketWindow = Field(default_factory=MarketWindow)
    actions: list[Action] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_order(self) -> Scenario:
        ats = [a.at for a in self.actions]
        if ats != sorted(ats):
            raise ValueError("actions must be in non-decreasing time order")
        return self


@dataclass
class ScenarioResult:
    """Result of a scenario run."""

    run_id: str
    strategy: str
    market: str
    payouts: dict[str, int] = field(default_factory=dict)
    rejections: list[dict[str, Any]] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)
    value_held: int = 0
    actions_processed: int = 0


def load_scenario(path: str | Path) -> Scenario:
    """Load a scenario from a .toml or .json file."""
    path = Path(path)
    if path.suffix == ".toml":
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = json.loads(path.read_text())
    return Scenario.model_validate(raw)


def _apply(market: SettlementMarket, action: Action) -> None:
    if action.op == "stake":
        market.stake(action.account, action.outcome, parse_ether(action.amount))
    elif action.op == "resolve":
        market.resolve(action.account, action.outcome)
    elif action.op == "claim":
        market.claim(action.account)
    else:
        market.withdraw_expired(action.account)


def run_scenario(scenario: Scenario, strategy: Strategy | str | None = None) -> ScenarioResult:
    """Replay all actions against a fresh market. Rejections are recorded, not raised."""
    clock = ManualClock(scenario.t0)
    custody = InMemoryCustody()
    registry = MarketRegistry(
        scenario.owner,
        clock=clock,
        custody=custody,
        default_strategy=strategy or scenario.strategy,
        initial_reserve=parse_ether(scenario.initial_reserve_ether),
    )
    events: list[MarketEvent] = []
    registry.subscribe(events.append)
    window = scenario.market
    start = scenario.t0 + window.start
    market = registry.create_market(
        scenario.owner, window.name, start, start + window.end, start + window.expiry
    )

    result = ScenarioResult(run_id=str(uuid.uuid4())[:8], strategy=market.strategy.value, market=market.address)
    for index, action in enumerate(scenario.actions):
        clock.set(max(clock.now(), start + action.at))
        try:
            _apply(market, action)
        except SettlementError as e:
            result.rejections.append(
                {"index": index, "op": action.op, "account": action.account, "reason": e.reason, "category": e.category}
            )
        result.actions_processed += 1

    result.payouts = dict(custody.paid)
    result.events = [e.model_dump(mode="json") for e in events]
    result.value_held = market.value_held
    log.info(
        "scenario_finished",
        run_id=result.run_id,
        strategy=result.strategy,
        actions=result.actions_processed,
        rejections=len(result.rejections),
    )
    return result
