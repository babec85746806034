"""Settlement error taxonomy. Every rejection carries a human-readable reason."""

from __future__ import annotations


class SettlementError(Exception):
    """Base for every error raised by a market or registry operation."""

    category = "settlement"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class MarketValidationError(SettlementError):
    """Bad construction arguments. No market is created."""

    category = "validation"


class TimingError(SettlementError):
    """Operation called outside its legal lifecycle phase."""

    category = "timing"


class EconomicError(SettlementError):
    category = "economic"


class ZeroAmountError(EconomicError):
    pass


class NothingToClaimError(EconomicError):
    pass


class AlreadyResolvedError(EconomicError):
    pass


class UnauthorizedError(SettlementError):
    category = "access"


class TransferFailed(SettlementError):
    """Custody could not move value. The calling operation is rolled back."""

    category = "transfer"


class ReentrancyError(SettlementError):
    category = "concurrency"


class OutcomeNotSetError(SettlementError):
    category = "query"
