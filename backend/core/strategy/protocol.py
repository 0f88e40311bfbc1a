"""Capability protocols for the collaborators the core talks to.

Providers implement only the capabilities they actually have:
- HistoricalBarSource: ordered OHLCV history
- IndicatorSource: externally computed indicator values
- LiveQuoteSource: current quotes
- ExecutionVenue: order placement and account state
- SignalLedger: persistence of the signal lifecycle
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from core.models.bar import Bar, Timeframe
from core.models.order import (
    AccountBalance,
    IndicatorValue,
    OrderResponse,
    Position,
    Quote,
    TradeOrder,
)
from core.models.signal import Outcome, TradingSignal


@runtime_checkable
class HistoricalBarSource(Protocol):
    async def get_historical_bars(
        self,
        symbol: str,
        from_date: datetime,
        to_date: datetime,
        timeframe: Timeframe,
    ) -> list[Bar]:
        """Return bars for the range, ordered by timestamp."""
        ...


@runtime_checkable
class IndicatorSource(Protocol):
    async def get_indicators(
        self,
        symbol: str,
        indicators: list[str],
        params: dict[str, Any] | None = None,
    ) -> list[IndicatorValue]:
        """Return the latest value of each requested indicator."""
        ...


@runtime_checkable
class LiveQuoteSource(Protocol):
    async def get_quote(self, symbol: str) -> Quote:
        ...

    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        ...


@runtime_checkable
class ExecutionVenue(Protocol):
    """Order routing for live/paper mode. Backtests never call this."""

    async def place_order(self, order: TradeOrder) -> OrderResponse:
        ...

    async def cancel_order(self, order_id: str) -> bool:
        ...

    async def get_positions(self) -> list[Position]:
        ...

    async def get_account_balance(self) -> AccountBalance:
        ...


@runtime_checkable
class SignalLedger(Protocol):
    """External record of signal lifecycle (candidate -> executed -> outcome).

    Implementations raise PersistenceError on write failure.
    """

    async def log_signal(self, signal: TradingSignal) -> None:
        ...

    async def update_signal_execution(
        self,
        signal_id: str,
        order_id: str,
        executed_price: float,
        executed_quantity: int,
        *,
        executed_at: datetime | None = None,
    ) -> None:
        ...

    async def update_signal_outcome(
        self,
        signal_id: str,
        outcome: Outcome,
        pnl: float | None = None,
        exit_price: float | None = None,
        exit_quantity: int | None = None,
        *,
        closed_at: datetime | None = None,
    ) -> None:
        ...
