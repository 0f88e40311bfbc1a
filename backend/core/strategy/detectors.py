"""Pattern detectors.

Each detector looks at the latest two bars and the indicator snapshot and
either returns a DetectorMatch or None. Factor vectors and reason codes
are fixed per pattern and direction.

Priority order (registration order):
    BREAKOUT -> PULLBACK -> REVERSAL -> CONTINUATION

This module is pure business logic with no I/O dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.models.bar import Bar
from core.models.signal import (
    ConfluenceFactors,
    Direction,
    IndicatorSnapshot,
    SignalType,
)
from core.strategy.registry import register_detector

VOLUME_SPIKE_MULT = 1.5
PULLBACK_DISTANCE = 0.02  # fraction of EMA20
RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
REVERSAL_RSI_LOW = 40.0
REVERSAL_RSI_HIGH = 60.0


@dataclass(frozen=True)
class DetectorMatch:
    """A detector hit, before stops and sizing are attached."""

    signal_type: SignalType
    direction: Direction
    factors: ConfluenceFactors
    reason_codes: tuple[str, ...]


BREAKOUT_FACTORS = ConfluenceFactors(
    trend_alignment=0.9,
    volume_confirmation=0.8,
    support_resistance=0.7,
    momentum_strength=0.6,
    volatility_appropriate=0.8,
)
PULLBACK_FACTORS = ConfluenceFactors(
    trend_alignment=0.7,
    volume_confirmation=0.5,
    support_resistance=0.8,
    momentum_strength=0.7,
    volatility_appropriate=0.6,
)
REVERSAL_FACTORS = ConfluenceFactors(
    trend_alignment=0.6,
    volume_confirmation=0.7,
    support_resistance=0.6,
    momentum_strength=0.8,
    volatility_appropriate=0.7,
)
CONTINUATION_FACTORS = ConfluenceFactors(
    trend_alignment=0.8,
    volume_confirmation=0.6,
    support_resistance=0.7,
    momentum_strength=0.7,
    volatility_appropriate=0.8,
)


@register_detector(SignalType.BREAKOUT)
def detect_breakout(
    current: Bar, previous: Bar, ind: IndicatorSnapshot
) -> DetectorMatch | None:
    """Close beyond both EMAs and VWAP with volume > 1.5x the 2-bar average."""
    avg_volume = (current.volume + previous.volume) / 2
    if current.volume <= avg_volume * VOLUME_SPIKE_MULT:
        return None

    close = current.close
    if close > ind.ema20 and close > ind.ema50 and close > ind.vwap:
        return DetectorMatch(
            SignalType.BREAKOUT,
            Direction.LONG,
            BREAKOUT_FACTORS,
            ("EMA_ABOVE", "VWAP_ABOVE", "VOLUME_SPIKE"),
        )
    if close < ind.ema20 and close < ind.ema50 and close < ind.vwap:
        return DetectorMatch(
            SignalType.BREAKOUT,
            Direction.SHORT,
            BREAKOUT_FACTORS,
            ("EMA_BELOW", "VWAP_BELOW", "VOLUME_SPIKE"),
        )
    return None


@register_detector(SignalType.PULLBACK)
def detect_pullback(
    current: Bar, previous: Bar, ind: IndicatorSnapshot
) -> DetectorMatch | None:
    """Price within 2% of EMA20 with RSI at an extreme."""
    if ind.ema20 <= 0 or not ind.rsi:
        return None
    if abs(current.close - ind.ema20) / ind.ema20 >= PULLBACK_DISTANCE:
        return None

    if ind.rsi < RSI_OVERSOLD:
        return DetectorMatch(
            SignalType.PULLBACK,
            Direction.LONG,
            PULLBACK_FACTORS,
            ("EMA_SUPPORT", "RSI_OVERSOLD"),
        )
    if ind.rsi > RSI_OVERBOUGHT:
        return DetectorMatch(
            SignalType.PULLBACK,
            Direction.SHORT,
            PULLBACK_FACTORS,
            ("EMA_RESISTANCE", "RSI_OVERBOUGHT"),
        )
    return None


@register_detector(SignalType.REVERSAL)
def detect_reversal(
    current: Bar, previous: Bar, ind: IndicatorSnapshot
) -> DetectorMatch | None:
    """MACD against signal line, RSI leaning the other way, price confirming.

    A zero MACD, signal or RSI means "not computed" and never matches.
    """
    if not (ind.macd and ind.macd_signal and ind.rsi):
        return None

    if ind.macd > ind.macd_signal and ind.rsi < REVERSAL_RSI_LOW and current.close > previous.close:
        return DetectorMatch(
            SignalType.REVERSAL,
            Direction.LONG,
            REVERSAL_FACTORS,
            ("MACD_CROSS", "RSI_OVERSOLD"),
        )
    if ind.macd < ind.macd_signal and ind.rsi > REVERSAL_RSI_HIGH and current.close < previous.close:
        return DetectorMatch(
            SignalType.REVERSAL,
            Direction.SHORT,
            REVERSAL_FACTORS,
            ("MACD_CROSS_DOWN", "RSI_OVERBOUGHT"),
        )
    return None


@register_detector(SignalType.CONTINUATION)
def detect_continuation(
    current: Bar, previous: Bar, ind: IndicatorSnapshot
) -> DetectorMatch | None:
    """Close, EMA20 and EMA50 stacked, with close on the same side of VWAP."""
    close = current.close
    if close > ind.ema20 > ind.ema50 and close > ind.vwap:
        return DetectorMatch(
            SignalType.CONTINUATION,
            Direction.LONG,
            CONTINUATION_FACTORS,
            ("TREND_ALIGNED", "EMA_ALIGNMENT", "VWAP_SUPPORT"),
        )
    if close < ind.ema20 < ind.ema50 and close < ind.vwap:
        return DetectorMatch(
            SignalType.CONTINUATION,
            Direction.SHORT,
            CONTINUATION_FACTORS,
            ("TREND_ALIGNED", "EMA_ALIGNMENT", "VWAP_RESISTANCE"),
        )
    return None
