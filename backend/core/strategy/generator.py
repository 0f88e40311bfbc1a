"""Signal generator: runs the registered detectors over a bar window.

Two aggregation policies:
- ALL_MATCHES: every detector that matches, sized and validated
- FIRST_MATCH: first match in priority order, sized only (the backtest
  loop applies its own execution gates)
"""

import logging
from enum import Enum
from typing import Sequence

from core.indicators import IndicatorCalculator
from core.models import (
    Bar,
    IndicatorSnapshot,
    RiskParameters,
    TradingMode,
    TradingSignal,
)
from core.risk import RiskValidator
from core.strategy.detectors import DetectorMatch
from core.strategy.registry import list_detectors

logger = logging.getLogger(__name__)

MIN_BARS = 50
STOP_ATR_MULT = 2.0
TARGET_ATR_MULT = 3.0
FALLBACK_ATR_PCT = 0.01  # of price, when ATR is unavailable


class AggregationPolicy(str, Enum):
    ALL_MATCHES = "all_matches"
    FIRST_MATCH = "first_match"


def build_signal(
    current: Bar,
    match: DetectorMatch,
    indicators: IndicatorSnapshot,
    *,
    is_enriched: bool = False,
    max_risk: float | None = None,
    mode: TradingMode = TradingMode.BACKTEST,
) -> TradingSignal:
    """Attach stops, target and risk/reward to a detector match."""
    price = current.close
    atr_value = indicators.atr or price * FALLBACK_ATR_PCT
    sign = match.direction.sign
    stop_loss = price - sign * atr_value * STOP_ATR_MULT
    take_profit = price + sign * atr_value * TARGET_ATR_MULT

    return TradingSignal(
        symbol=current.symbol,
        timestamp=current.timestamp,
        signal_type=match.signal_type,
        direction=match.direction,
        price=price,
        stop_loss=stop_loss,
        take_profit=take_profit,
        indicators=indicators,
        confluence_score=match.factors.score,
        reason_codes=list(match.reason_codes),
        risk_reward_ratio=abs(take_profit - price) / abs(stop_loss - price),
        mode=mode,
        is_enriched=is_enriched,
        max_risk=max_risk,
    )


class SignalGenerator:
    """Turns bar windows into sized TradingSignal candidates."""

    def __init__(
        self,
        risk_params: RiskParameters | None = None,
        calculator: IndicatorCalculator | None = None,
        validator: RiskValidator | None = None,
    ):
        self.risk_params = risk_params or RiskParameters()
        self.calculator = calculator or IndicatorCalculator()
        self.validator = validator or RiskValidator(self.risk_params)

    def generate(
        self,
        bars: Sequence[Bar],
        balance: float,
        policy: AggregationPolicy = AggregationPolicy.FIRST_MATCH,
        enriched: dict[str, float | None] | None = None,
        mode: TradingMode = TradingMode.BACKTEST,
    ) -> list[TradingSignal]:
        """Evaluate the detectors at the last bar of the window.

        Args:
            bars: Ordered bar window, at least MIN_BARS long
            balance: Account balance used for sizing
            policy: ALL_MATCHES or FIRST_MATCH
            enriched: Optional provider indicator values overriding local ones
            mode: Trading mode stamped on the signals

        Returns:
            Sized candidates; at most one for FIRST_MATCH
        """
        if len(bars) < MIN_BARS:
            return []

        current, previous = bars[-1], bars[-2]
        indicators = self.calculator.calculate(bars, enriched)
        budget = self.risk_params.risk_budget(balance)

        signals: list[TradingSignal] = []
        for signal_type, detect in list_detectors():
            match = detect(current, previous, indicators)
            if match is None:
                continue

            signal = build_signal(
                current,
                match,
                indicators,
                is_enriched=bool(enriched),
                max_risk=budget,
                mode=mode,
            )
            signal.quantity = self.validator.size(
                balance, budget, signal.stop_loss, signal.price
            )
            if signal.quantity <= 0:
                logger.debug(
                    f"{signal.symbol} {signal_type.value}: zero size, discarded"
                )
                if policy == AggregationPolicy.FIRST_MATCH:
                    return []
                continue

            if policy == AggregationPolicy.FIRST_MATCH:
                return [signal]

            reason = self.validator.check(signal)
            if reason:
                logger.debug(f"{signal.symbol} {signal_type.value}: rejected ({reason})")
                continue
            signals.append(signal)

        return signals

    def first_match(
        self,
        bars: Sequence[Bar],
        balance: float,
        enriched: dict[str, float | None] | None = None,
    ) -> TradingSignal | None:
        """Priority-order evaluation, as used by the backtest loop."""
        signals = self.generate(bars, balance, AggregationPolicy.FIRST_MATCH, enriched)
        return signals[0] if signals else None
