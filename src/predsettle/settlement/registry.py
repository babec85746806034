"""Market registry - owner-only factory that creates markets and indexes their addresses."""

from __future__ import annotations

from typing import Any, Callable

import structlog

from predsettle.models.events import MarketCreated, MarketEvent
from predsettle.models.market import Strategy
from predsettle.settlement.bonding import DEFAULT_INITIAL_RESERVE, BondingCurveMarket
from predsettle.settlement.collaborators import Clock, Custody, OwnerAuthority
from predsettle.settlement.errors import UnauthorizedError
from predsettle.settlement.market import PredictionMarket, SettlementMarket

log = structlog.get_logger(__name__)

MARKET_TYPES: dict[Strategy, type[SettlementMarket]] = {
    Strategy.ACCRUAL: PredictionMarket,
    Strategy.BONDING_CURVE: BondingCurveMarket,
}


def market_class(strategy: Strategy | str) -> type[SettlementMarket]:
    return MARKET_TYPES[Strategy(strategy)]


class MarketRegistry:
    """Creates markets owned by the registry owner. Markets share the registry's clock and custody."""

    def __init__(
        self,
        owner: str,
        *,
        clock: Clock,
        custody: Custody,
        default_strategy: Strategy | str = Strategy.ACCRUAL,
        initial_reserve: int = DEFAULT_INITIAL_RESERVE,
    ) -> None:
        self.owner = owner
        self.clock = clock
        self.custody = custody
        self.default_strategy = Strategy(default_strategy)
        self.initial_reserve = initial_reserve
        self._authority = OwnerAuthority(owner)
        self._markets: dict[str, SettlementMarket] = {}
        self._listeners: list[Callable[[MarketEvent], None]] = []

    def subscribe(self, listener: Callable[[MarketEvent], None]) -> None:
        """Listen to registry events and to events of every market created afterwards."""
        self._listeners.append(listener)

    def create_market(
        self,
        caller: str,
        name: str,
        start_time: int,
        end_time: int,
        expiry_time: int,
        strategy: Strategy | str | None = None,
    ) -> SettlementMarket:
        if not self._authority(caller):
            log.warning("create_market_rejected", caller=caller, reason="not registry owner")
            raise UnauthorizedError(f"{caller} is not the registry owner")
        cls = market_class(strategy or self.default_strategy)
        kwargs: dict[str, Any] = {}
        if cls is BondingCurveMarket:
            kwargs["initial_reserve"] = self.initial_reserve
        market = cls.create(
            name,
            self.owner,
            start_time,
            end_time,
            expiry_time,
            clock=self.clock,
            custody=self.custody,
            **kwargs,
        )
        self.add(market)
        event = MarketCreated(market=market.address, name=name, timestamp=self.clock.now())
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("event_listener_failed", kind=event.kind, market=market.address)
        return market

    def add(self, market: SettlementMarket) -> None:
        """Index an existing market (e.g. one loaded from storage)."""
        self._markets[market.address] = market
        for listener in self._listeners:
            market.subscribe(listener)

    def get(self, address: str) -> SettlementMarket:
        try:
            return self._markets[address]
        except KeyError:
            raise KeyError(f"Unknown market: {address}") from None

    def markets(self) -> list[str]:
        return list(self._markets)
