"""Statistics calculator for backtest results.

Computes overall metrics, per-symbol/signal-type/direction breakdowns,
the daily realised P&L series, drawdown and a simplified Sharpe ratio.

Sharpe here is mean / population-stdev of consecutive equity-curve
percentage changes, with no risk-free rate and no annualisation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from statistics import fmean, pstdev

from core.models.signal import Outcome, TradingSignal

logger = logging.getLogger(__name__)


@dataclass
class EquityCurvePoint:
    date: datetime
    balance: float


@dataclass
class GroupStats:
    """Outcome counts for one symbol, signal type or direction."""

    key: str
    total: int = 0
    wins: int = 0
    losses: int = 0
    breakeven: int = 0
    total_pnl: float = 0.0

    @property
    def win_rate(self) -> float:
        return self.wins / self.total if self.total > 0 else 0.0


@dataclass
class DailyPnL:
    date: str  # YYYY-MM-DD
    trades: int = 0
    pnl: float = 0.0
    cumulative_pnl: float = 0.0


@dataclass
class BacktestResult:
    """Complete backtest results."""

    initial_balance: float
    final_balance: float

    # Closed signals
    signals: list[TradingSignal] = field(default_factory=list)
    equity_curve: list[EquityCurvePoint] = field(default_factory=list)

    # Overall
    total_signals: int = 0
    winning_signals: int = 0
    losing_signals: int = 0
    breakeven_signals: int = 0
    win_rate: float = 0.0  # fraction of closed signals
    total_pnl: float = 0.0
    average_pnl: float = 0.0
    max_drawdown: float = 0.0  # fraction of running peak
    sharpe_ratio: float = 0.0
    return_percentage: float = 0.0

    # Breakdowns
    by_symbol: list[GroupStats] = field(default_factory=list)
    by_signal_type: list[GroupStats] = field(default_factory=list)
    by_direction: list[GroupStats] = field(default_factory=list)
    daily_pnl: list[DailyPnL] = field(default_factory=list)

    # Ledger writes that failed during the run
    ledger_errors: int = 0


class StatisticsCalculator:
    """Calculate backtest statistics from closed signals and the equity curve."""

    def calculate(
        self,
        signals: list[TradingSignal],
        equity_curve: list[EquityCurvePoint],
        initial_balance: float,
        final_balance: float,
        ledger_errors: int = 0,
    ) -> BacktestResult:
        result = BacktestResult(
            initial_balance=initial_balance,
            final_balance=final_balance,
            signals=signals,
            equity_curve=equity_curve,
            ledger_errors=ledger_errors,
        )
        self._calc_overall(result)
        self._calc_drawdown(result)
        self._calc_sharpe(result)
        result.by_symbol = self._group(signals, lambda s: s.symbol)
        result.by_signal_type = self._group(signals, lambda s: s.signal_type.value)
        result.by_direction = self._group(signals, lambda s: s.direction.value)
        self._calc_daily_pnl(result)
        return result

    def _calc_overall(self, result: BacktestResult) -> None:
        closed = result.signals
        result.total_signals = len(closed)
        result.winning_signals = sum(1 for s in closed if s.outcome == Outcome.WIN)
        result.losing_signals = sum(1 for s in closed if s.outcome == Outcome.LOSS)
        result.breakeven_signals = sum(1 for s in closed if s.outcome == Outcome.BREAKEVEN)

        result.total_pnl = sum(s.pnl or 0.0 for s in closed)
        if closed:
            result.win_rate = result.winning_signals / len(closed)
            result.average_pnl = result.total_pnl / len(closed)

        if result.initial_balance > 0:
            result.return_percentage = (
                (result.final_balance - result.initial_balance)
                / result.initial_balance
                * 100
            )

    def _calc_drawdown(self, result: BacktestResult) -> None:
        peak = result.initial_balance
        max_dd = 0.0
        for point in result.equity_curve:
            peak = max(peak, point.balance)
            if peak > 0:
                max_dd = max(max_dd, (peak - point.balance) / peak)
        result.max_drawdown = min(max_dd, 1.0)

    def _calc_sharpe(self, result: BacktestResult) -> None:
        balances = [p.balance for p in result.equity_curve]
        returns = [
            (curr - prev) / prev
            for prev, curr in zip(balances, balances[1:])
            if prev != 0
        ]
        if not returns:
            return
        stdev = pstdev(returns)
        if stdev > 0:
            result.sharpe_ratio = fmean(returns) / stdev

    def _group(self, signals: list[TradingSignal], key_fn) -> list[GroupStats]:
        groups: dict[str, GroupStats] = {}
        for signal in signals:
            key = key_fn(signal)
            if key not in groups:
                groups[key] = GroupStats(key=key)
            stats = groups[key]
            stats.total += 1
            stats.total_pnl += signal.pnl or 0.0
            if signal.outcome == Outcome.WIN:
                stats.wins += 1
            elif signal.outcome == Outcome.LOSS:
                stats.losses += 1
            elif signal.outcome == Outcome.BREAKEVEN:
                stats.breakeven += 1
        return sorted(groups.values(), key=lambda g: (-g.total, g.key))

    def _calc_daily_pnl(self, result: BacktestResult) -> None:
        daily: dict[str, DailyPnL] = {}
        for signal in result.signals:
            if signal.closed_at is None:
                continue
            date_str = signal.closed_at.strftime("%Y-%m-%d")
            if date_str not in daily:
                daily[date_str] = DailyPnL(date=date_str)
            entry = daily[date_str]
            entry.trades += 1
            entry.pnl += signal.pnl or 0.0

        # Sort by date and compute cumulative
        sorted_daily = sorted(daily.values(), key=lambda d: d.date)
        cumulative = 0.0
        for entry in sorted_daily:
            entry.pnl = round(entry.pnl, 2)
            cumulative += entry.pnl
            entry.cumulative_pnl = round(cumulative, 2)
        result.daily_pnl = sorted_daily
