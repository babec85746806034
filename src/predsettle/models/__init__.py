"""Canonical schema (Pydantic) - market terms, outcomes, events."""

from predsettle.models.events import (
    Claimed,
    ExpiredWithdrawal,
    MarketCreated,
    MarketEvent,
    OutcomeResolved,
    StakeRecorded,
)
from predsettle.models.market import MarketTerms, Outcome, Resolution, Strategy

__all__ = [
    "MarketTerms",
    "Outcome",
    "Resolution",
    "Strategy",
    "MarketEvent",
    "StakeRecorded",
    "Claimed",
    "ExpiredWithdrawal",
    "OutcomeResolved",
    "MarketCreated",
]
