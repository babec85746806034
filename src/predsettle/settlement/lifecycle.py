"""Market lifecycle state machine - time-driven phases plus the one explicit resolve transition."""

from __future__ import annotations

from enum import Enum

from predsettle.models.market import MarketTerms, Resolution
from predsettle.settlement.errors import TimingError


class Phase(str, Enum):
    PREDICTING = "predicting"
    AWAITING_RESOLUTION = "awaiting_resolution"
    RESOLVED = "resolved"
    EXPIRED = "expired"


def phase_at(terms: MarketTerms, now: int) -> Phase:
    if terms.resolution is not Resolution.UNSET:
        return Phase.RESOLVED
    if now < terms.end_time:
        return Phase.PREDICTING
    if now < terms.expiry_time:
        return Phase.AWAITING_RESOLUTION
    return Phase.EXPIRED


def stake_window_open(terms: MarketTerms, now: int) -> bool:
    return terms.start_time <= now < terms.end_time


def require_stake_window(terms: MarketTerms, now: int) -> None:
    if phase_at(terms, now) is not Phase.PREDICTING or not stake_window_open(terms, now):
        raise TimingError("Prediction window is closed")


def require_resolvable(terms: MarketTerms, now: int) -> None:
    """Resolve is legal only while awaiting resolution. Double resolution is checked by the caller."""
    if now < terms.end_time:
        raise TimingError("Cannot set outcome before end time")
    if now >= terms.expiry_time:
        raise TimingError("Cannot set outcome after expiry time")


def require_claimable(terms: MarketTerms, now: int) -> None:
    if phase_at(terms, now) is not Phase.RESOLVED:
        raise TimingError("Outcome has not been set yet")


def require_expired(terms: MarketTerms, now: int) -> None:
    if terms.resolution is not Resolution.UNSET:
        raise TimingError("Outcome has been set")
    if now < terms.expiry_time:
        raise TimingError("Cannot withdraw before expiry time")
