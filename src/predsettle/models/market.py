"""Outcome, Resolution, MarketTerms - canonical market entities."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, Field


class Outcome(str, Enum):
    """One of the two mutually exclusive results of a market."""

    YES = "yes"
    NO = "no"

    @classmethod
    def parse(cls, value: Outcome | bool | str) -> Outcome:
        """Accept an Outcome, a boolean tag (True = YES) or a name like "yes"/"false"."""
        if isinstance(value, Outcome):
            return value
        if isinstance(value, bool):
            return cls.YES if value else cls.NO
        text = str(value).strip().lower()
        if text in ("yes", "true", "1"):
            return cls.YES
        if text in ("no", "false", "0"):
            return cls.NO
        raise ValueError(f"Unknown outcome: {value!r}")

    @property
    def opposite(self) -> Outcome:
        return Outcome.NO if self is Outcome.YES else Outcome.YES


class Resolution(IntEnum):
    """Resolved answer. Stored as 0 (unset), 1 (yes), 2 (no)."""

    UNSET = 0
    YES = 1
    NO = 2

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> Resolution:
        return cls.YES if outcome is Outcome.YES else cls.NO

    @property
    def outcome(self) -> Outcome | None:
        if self is Resolution.UNSET:
            return None
        return Outcome.YES if self is Resolution.YES else Outcome.NO


class Strategy(str, Enum):
    """Payout strategy of a market. One per market, never mixed."""

    ACCRUAL = "accrual"
    BONDING_CURVE = "bonding_curve"


class MarketTerms(BaseModel):
    """Immutable header of a market (the prediction data view)."""

    name: str
    owner: str
    start_time: int = Field(..., ge=0, description="Epoch seconds, stake window opens")
    end_time: int = Field(..., ge=0, description="Epoch seconds, stake window closes")
    expiry_time: int = Field(..., ge=0, description="Epoch seconds, unresolved stakes refundable")
    resolution: Resolution = Resolution.UNSET
    strategy: Strategy = Strategy.ACCRUAL

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time
