"""In-memory signal ledger and the shared performance summary."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from core.errors import PersistenceError
from core.models.signal import Outcome, TradingMode, TradingSignal

logger = logging.getLogger(__name__)


@dataclass
class SignalPerformance:
    """Ledger-wide outcome summary."""

    total_signals: int = 0
    winning_signals: int = 0
    losing_signals: int = 0
    breakeven_signals: int = 0
    open_signals: int = 0
    win_rate: float = 0.0  # wins / closed
    average_pnl: float = 0.0
    total_pnl: float = 0.0
    enriched_win_rate: float = 0.0
    local_win_rate: float = 0.0


def _win_rate(signals: list[TradingSignal]) -> float:
    closed = [s for s in signals if s.outcome != Outcome.OPEN]
    if not closed:
        return 0.0
    return sum(1 for s in closed if s.outcome == Outcome.WIN) / len(closed)


def summarize_performance(signals: list[TradingSignal]) -> SignalPerformance:
    pnls = [s.pnl for s in signals if s.pnl is not None]
    return SignalPerformance(
        total_signals=len(signals),
        winning_signals=sum(1 for s in signals if s.outcome == Outcome.WIN),
        losing_signals=sum(1 for s in signals if s.outcome == Outcome.LOSS),
        breakeven_signals=sum(1 for s in signals if s.outcome == Outcome.BREAKEVEN),
        open_signals=sum(1 for s in signals if s.outcome == Outcome.OPEN),
        win_rate=_win_rate(signals),
        average_pnl=sum(pnls) / len(pnls) if pnls else 0.0,
        total_pnl=sum(pnls),
        enriched_win_rate=_win_rate([s for s in signals if s.is_enriched]),
        local_win_rate=_win_rate([s for s in signals if not s.is_enriched]),
    )


class InMemorySignalLedger:
    """Signal ledger kept in a dict. Default ledger for backtests."""

    def __init__(self):
        self._signals: dict[str, TradingSignal] = {}

    def _get(self, signal_id: str) -> TradingSignal:
        signal = self._signals.get(signal_id)
        if signal is None:
            raise PersistenceError(f"Unknown signal id: {signal_id}")
        return signal

    async def log_signal(self, signal: TradingSignal) -> None:
        self._signals[signal.id] = signal.model_copy(deep=True)

    async def update_signal_execution(
        self,
        signal_id: str,
        order_id: str,
        executed_price: float,
        executed_quantity: int,
        *,
        executed_at: datetime | None = None,
    ) -> None:
        signal = self._get(signal_id)
        signal.order_id = order_id
        signal.executed_price = executed_price
        signal.executed_quantity = executed_quantity
        signal.executed_at = executed_at or datetime.now(timezone.utc)

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
        signal = self._get(signal_id)
        signal.outcome = outcome
        signal.pnl = pnl
        signal.exit_price = exit_price
        signal.exit_quantity = exit_quantity
        signal.closed_at = closed_at or datetime.now(timezone.utc)

    def get(self, signal_id: str) -> TradingSignal | None:
        return self._signals.get(signal_id)

    def all(self) -> list[TradingSignal]:
        return list(self._signals.values())

    async def get_signal_performance(
        self,
        symbol: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        mode: TradingMode | None = None,
    ) -> SignalPerformance:
        signals = [
            s
            for s in self._signals.values()
            if (symbol is None or s.symbol == symbol)
            and (from_date is None or s.timestamp >= from_date)
            and (to_date is None or s.timestamp <= to_date)
            and (mode is None or s.mode == mode)
        ]
        return summarize_performance(signals)

    def __len__(self) -> int:
        return len(self._signals)
