"""Settlement engine - stake ledger, lazy accrual, payout, lifecycle, bonding-curve variant."""

from predsettle.settlement.bonding import BondingCurveMarket
from predsettle.settlement.collaborators import InMemoryCustody, ManualClock, OwnerAuthority, SystemClock
from predsettle.settlement.errors import (
    AlreadyResolvedError,
    MarketValidationError,
    NothingToClaimError,
    OutcomeNotSetError,
    ReentrancyError,
    SettlementError,
    TimingError,
    TransferFailed,
    UnauthorizedError,
    ZeroAmountError,
)
from predsettle.settlement.lifecycle import Phase
from predsettle.settlement.market import PredictionMarket, SettlementMarket
from predsettle.settlement.registry import MarketRegistry, market_class

__all__ = [
    "SettlementMarket",
    "PredictionMarket",
    "BondingCurveMarket",
    "MarketRegistry",
    "market_class",
    "Phase",
    "ManualClock",
    "SystemClock",
    "InMemoryCustody",
    "OwnerAuthority",
    "SettlementError",
    "MarketValidationError",
    "TimingError",
    "ZeroAmountError",
    "NothingToClaimError",
    "AlreadyResolvedError",
    "UnauthorizedError",
    "TransferFailed",
    "ReentrancyError",
    "OutcomeNotSetError",
]
