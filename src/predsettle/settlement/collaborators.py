"""External collaborators: clock, custody (value transfer), authority check."""

from __future__ import annotations

import time
from typing import Callable, Protocol

import structlog

from predsettle.settlement.errors import TransferFailed

log = structlog.get_logger(__name__)


class Clock(Protocol):
    """Monotonic time source. The core only reads it."""

    def now(self) -> int: ...


class Custody(Protocol):
    """Moves value out of a market. Raises TransferFailed on any failure."""

    def transfer(self, account: str, amount: int) -> None: ...


Authorize = Callable[[str], bool]


class SystemClock:
    """Wall clock in epoch seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock for tests and scenario replay. Only moves forward."""

    def __init__(self, now: int = 0) -> None:
        self._now = now

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> int:
        if timestamp < self._now:
            raise ValueError(f"Clock cannot move backwards ({timestamp} < {self._now})")
        self._now = timestamp
        return self._now


class InMemoryCustody:
    """Records payouts per account. Accounts in `failing` have their transfers rejected."""

    def __init__(self, on_transfer: Callable[[str, int], None] | None = None) -> None:
        self.paid: dict[str, int] = {}
        self.transfers: list[tuple[str, int]] = []
        self.failing: set[str] = set()
        self.on_transfer = on_transfer

    def transfer(self, account: str, amount: int) -> None:
        if account in self.failing:
            log.warning("transfer_rejected", account=account, amount=amount)
            raise TransferFailed(f"Transfer to {account} failed")
        if self.on_transfer is not None:
            # Recipient hook runs before the value lands, like a receive callback
            self.on_transfer(account, amount)
        self.paid[account] = self.paid.get(account, 0) + amount
        self.transfers.append((account, amount))

    def total_paid(self) -> int:
        return sum(self.paid.values())


class OwnerAuthority:
    """Capability check that only admits the designated owner address."""

    def __init__(self, owner: str) -> None:
        self.owner = owner

    def __call__(self, caller: str) -> bool:
        return bool(caller) and caller.lower() == self.owner.lower()
