"""Market events - the outward surface for indexers and UIs."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel

from predsettle.models.market import Outcome


class StakeRecorded(BaseModel):
    kind: Literal["stake_recorded"] = "stake_recorded"
    market: str
    account: str
    outcome: Outcome
    amount: int
    timestamp: int


class Claimed(BaseModel):
    kind: Literal["claimed"] = "claimed"
    market: str
    account: str
    amount: int
    timestamp: int


class ExpiredWithdrawal(BaseModel):
    kind: Literal["expired_withdrawal"] = "expired_withdrawal"
    market: str
    account: str
    amount: int
    timestamp: int


class OutcomeResolved(BaseModel):
    kind: Literal["outcome_resolved"] = "outcome_resolved"
    market: str
    caller: str
    outcome: Outcome
    timestamp: int


class MarketCreated(BaseModel):
    kind: Literal["market_created"] = "market_created"
    market: str
    name: str
    timestamp: int


MarketEvent = Union[StakeRecorded, Claimed, ExpiredWithdrawal, OutcomeResolved, MarketCreated]
