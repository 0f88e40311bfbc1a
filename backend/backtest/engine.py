"""Walk-forward backtest simulator.

For each symbol, bars are fetched once and replayed from index 50. At
every bar:
1. Entry: if the symbol has no open position and the per-symbol and
   concurrent-position caps allow it, the generator is asked for a
   first-match signal, which then has to pass the execution gates
2. Exit: an open position is closed at the bar close on a stop-loss or
   take-profit crossing (stop-loss checked first)
3. Equity curve sampled every 24 bars and on the last bar

Balance and the daily P&L map are shared across symbols; positions,
counters and cooldown timestamps are per symbol. Symbols are processed
one after another.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any

from pydantic import ValidationError

from core.errors import ConfigurationError, PersistenceError, ProviderError
from core.models import (
    Bar,
    ExitReason,
    Outcome,
    TradingMode,
    TradingSignal,
    classify_outcome,
)
from core.risk import BALANCE_USAGE, RiskValidator
from core.strategy.generator import MIN_BARS, SignalGenerator
from core.strategy.protocol import HistoricalBarSource, IndicatorSource, SignalLedger

from backtest.config import BacktestConfig
from backtest.ledger import InMemorySignalLedger
from backtest.stats import BacktestResult, EquityCurvePoint, StatisticsCalculator

logger = logging.getLogger(__name__)

EQUITY_SAMPLE_EVERY = 24  # bars
ENRICHED_INDICATORS = ["atr", "ema20", "ema50", "vwap", "rsi"]


class BacktestEngine:
    """Replay historical bars through the signal generator and risk gates.

    Owns balance, open positions, closed signals, equity curve and the
    daily P&L map for the lifetime of one run.
    """

    def __init__(
        self,
        config: BacktestConfig | dict[str, Any],
        bar_source: HistoricalBarSource,
        ledger: SignalLedger | None = None,
        indicator_source: IndicatorSource | None = None,
        generator: SignalGenerator | None = None,
    ):
        self.config = self._validate_config(config)
        if self.config.use_enriched_indicators and indicator_source is None:
            raise ConfigurationError(
                "use_enriched_indicators requires an indicator source"
            )

        self.bar_source = bar_source
        self.indicator_source = indicator_source
        self.ledger = ledger or InMemorySignalLedger()
        self.risk_params = self.config.risk_params
        self.generator = generator or SignalGenerator(self.risk_params)
        self.validator: RiskValidator = self.generator.validator

        self._balance = self.config.initial_balance
        self._open_positions: dict[str, TradingSignal] = {}
        self._closed: list[TradingSignal] = []
        self._equity_curve: list[EquityCurvePoint] = []
        self._daily_pnl: dict[date, float] = defaultdict(float)
        self._executed_count: dict[str, int] = defaultdict(int)
        self._last_signal_time: dict[str, datetime] = {}
        self._last_bar_time: dict[str, datetime] = {}
        self._order_seq = 0
        self._ledger_errors = 0

    @staticmethod
    def _validate_config(config: BacktestConfig | dict[str, Any]) -> BacktestConfig:
        if isinstance(config, BacktestConfig):
            try:
                # Re-run validators; the object may have been mutated
                return BacktestConfig.model_validate(config.model_dump())
            except ValidationError as e:
                raise ConfigurationError(f"Invalid backtest configuration: {e}") from e
        return BacktestConfig.build(**config)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def balance(self) -> float:
        return self._balance

    @property
    def open_positions(self) -> dict[str, TradingSignal]:
        return dict(self._open_positions)

    @property
    def daily_pnl(self) -> dict[date, float]:
        return dict(self._daily_pnl)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> BacktestResult:
        """Run the backtest over every configured symbol."""
        cfg = self.config
        logger.info(
            f"Starting backtest for {', '.join(cfg.symbols)} "
            f"from {cfg.from_date.isoformat()} to {cfg.to_date.isoformat()}"
        )

        self._equity_curve.append(EquityCurvePoint(cfg.from_date, self._balance))

        for symbol in cfg.symbols:
            try:
                await self._process_symbol(symbol)
            except Exception as e:
                logger.error(f"Error processing symbol {symbol}: {e}", exc_info=True)

        await self._close_all_positions()

        result = StatisticsCalculator().calculate(
            signals=list(self._closed),
            equity_curve=list(self._equity_curve),
            initial_balance=cfg.initial_balance,
            final_balance=self._balance,
            ledger_errors=self._ledger_errors,
        )
        logger.info(
            f"Backtest completed. Final balance: {result.final_balance:.2f} "
            f"({result.return_percentage:.2f}% return, {result.total_signals} signals)"
        )
        if self._ledger_errors:
            logger.warning(
                f"{self._ledger_errors} ledger writes failed; the stored outcome trail is incomplete"
            )
        return result

    async def _process_symbol(self, symbol: str) -> None:
        logger.info(f"Processing symbol: {symbol}")
        bars = await self.bar_source.get_historical_bars(
            symbol, self.config.from_date, self.config.to_date, self.config.timeframe
        )
        if not bars:
            logger.info(f"No historical data found for {symbol}")
            return

        last_index = len(bars) - 1
        for i in range(MIN_BARS, len(bars)):
            window = bars[: i + 1]
            bar = window[-1]
            self._last_bar_time[symbol] = bar.timestamp

            if self._can_open_position(symbol):
                await self._process_bar_for_signals(symbol, window, bar)

            await self._check_exit(symbol, bar)

            if i % EQUITY_SAMPLE_EVERY == 0 or i == last_index:
                self._equity_curve.append(EquityCurvePoint(bar.timestamp, self._balance))

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    def _can_open_position(self, symbol: str) -> bool:
        if symbol in self._open_positions:
            return False
        if len(self._open_positions) >= self.config.max_concurrent_positions:
            return False
        return self._executed_count[symbol] < self.config.max_signals_per_symbol

    async def _process_bar_for_signals(
        self, symbol: str, window: list[Bar], bar: Bar
    ) -> None:
        enriched = None
        if self.config.use_enriched_indicators:
            enriched = await self._get_enriched_indicators(symbol)

        signal = self.generator.first_match(window, self._balance, enriched)
        if signal is None:
            return

        reason = self._execution_block_reason(signal, bar)
        if reason:
            logger.debug(f"{symbol} {signal.signal_type.value} {signal.direction.value} skipped: {reason}")
            return

        await self._execute_signal(signal, bar)

    async def _get_enriched_indicators(self, symbol: str) -> dict[str, float] | None:
        try:
            values = await self.indicator_source.get_indicators(symbol, ENRICHED_INDICATORS)
        except ProviderError as e:
            logger.warning(f"Failed to get enriched indicators for {symbol}: {e}")
            return None
        return {v.indicator: v.value for v in values} or None

    def _execution_block_reason(self, signal: TradingSignal, bar: Bar) -> str | None:
        """Return why a signal may not be executed, or None if it may."""
        params = self.risk_params

        if not self.validator.passes_confluence(signal):
            return f"confluence {signal.confluence_score:.3f} below {params.min_confluence_score}"

        if not params.in_kill_zone(bar.timestamp):
            return "outside kill zones"

        required = signal.price * signal.quantity
        if required > self._balance * BALANCE_USAGE:
            return f"requires {required:.2f}, balance {self._balance:.2f}"

        today = self._daily_pnl.get(bar.timestamp.date(), 0.0)
        if today < -(self._balance * params.max_daily_loss / 100):
            return f"daily loss limit reached ({today:.2f})"
        if today > self._balance * params.max_daily_win / 100:
            return f"daily win limit reached ({today:.2f})"

        last = self._last_signal_time.get(signal.symbol)
        if last is not None:
            hours = (bar.timestamp - last).total_seconds() / 3600
            if hours < params.symbol_cooldown_hours:
                return f"cooldown ({hours:.1f}h < {params.symbol_cooldown_hours}h)"

        return None

    async def _execute_signal(self, signal: TradingSignal, bar: Bar) -> None:
        signal.mode = TradingMode.BACKTEST
        signal.executed_at = bar.timestamp
        signal.executed_price = bar.close
        signal.executed_quantity = signal.quantity
        self._order_seq += 1
        signal.order_id = f"backtest_{self._order_seq}"

        self._open_positions[signal.symbol] = signal
        self._balance -= signal.cost_basis
        self._executed_count[signal.symbol] += 1
        self._last_signal_time[signal.symbol] = bar.timestamp

        logger.info(
            f"Signal executed: {signal.symbol} {signal.signal_type.value} "
            f"{signal.direction.value} {signal.executed_quantity} @ {signal.executed_price:.2f}"
        )

        await self._ledger_call("log_signal", signal)
        await self._ledger_call(
            "update_signal_execution",
            signal.id,
            signal.order_id,
            signal.executed_price,
            signal.executed_quantity,
            executed_at=signal.executed_at,
        )

    # ------------------------------------------------------------------
    # Exit
    # ------------------------------------------------------------------

    async def _check_exit(self, symbol: str, bar: Bar) -> None:
        position = self._open_positions.get(symbol)
        if position is None:
            return

        price = bar.close
        if position.stop_hit(price):
            reason = ExitReason.STOP_LOSS
        elif position.target_hit(price):
            reason = ExitReason.TAKE_PROFIT
        else:
            return

        params = self.risk_params
        qty = position.executed_quantity
        delta = price - position.executed_price
        pnl = (
            position.direction.sign * delta * qty
            - params.commission_per_trade
            - params.slippage_percent * abs(delta) * qty
        )
        # Realised P&L counts toward the day the position was opened
        self._daily_pnl[position.executed_at.date()] += pnl
        await self._close_position(position, price, pnl, reason, bar.timestamp)

    async def _close_position(
        self,
        position: TradingSignal,
        exit_price: float,
        pnl: float,
        reason: ExitReason,
        closed_at: datetime,
    ) -> None:
        position.outcome = classify_outcome(pnl)
        position.pnl = pnl
        position.exit_price = exit_price
        position.exit_quantity = position.executed_quantity
        position.exit_reason = reason
        position.closed_at = closed_at

        self._balance += position.cost_basis + pnl
        del self._open_positions[position.symbol]
        self._closed.append(position)

        logger.info(
            f"Position closed: {position.symbol} {position.direction.value} "
            f"{reason.value} @ {exit_price:.2f}, pnl={pnl:.2f} ({position.outcome.value})"
        )

        await self._ledger_call(
            "update_signal_outcome",
            position.id,
            position.outcome,
            pnl,
            exit_price,
            position.exit_quantity,
            closed_at=closed_at,
        )

    async def _close_all_positions(self) -> None:
        """Force-close leftovers at their own execution price with zero P&L."""
        for symbol, position in list(self._open_positions.items()):
            closed_at = self._last_bar_time.get(symbol, self.config.to_date)
            await self._close_position(
                position,
                position.executed_price,
                0.0,
                ExitReason.BACKTEST_END,
                closed_at,
            )

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def _ledger_call(self, method: str, *args, **kwargs) -> None:
        try:
            await getattr(self.ledger, method)(*args, **kwargs)
        except PersistenceError as e:
            self._ledger_errors += 1
            logger.warning(f"Ledger {method} failed: {e}")
