"""Technical indicators for signal generation.

Every function takes an ordered bar window (oldest first) and returns the
value at the END of that window. When the window is shorter than the
lookback the indicator needs, the function returns 0.0 instead of raising,
and callers treat 0.0 as "not available".

These differ from the textbook definitions:
- ATR is a simple average over the first ``period`` true ranges of the
  window (after a one-bar warm-up), not Wilder-smoothed.
- EMA is seeded with the first close of the window, not an SMA seed.
- VWAP is cumulative over the whole window (no session reset).
- RSI is a simple average of the first ``period`` deltas (no smoothing).
- The MACD "signal" is EMA(signal_period) of closes, not of the MACD line.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from core.models.bar import Bar
from core.models.signal import IndicatorSnapshot


def _closes(bars: Sequence[Bar]) -> np.ndarray:
    return np.fromiter((b.close for b in bars), dtype=np.float64, count=len(bars))


def true_range(bars: Sequence[Bar]) -> list[float]:
    """
    Calculate True Range for every bar after the first.

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close))

    Args:
        bars: Ordered bar window

    Returns:
        List of len(bars) - 1 True Range values
    """
    if len(bars) < 2:
        return []

    highs = np.fromiter((b.high for b in bars), dtype=np.float64, count=len(bars))
    lows = np.fromiter((b.low for b in bars), dtype=np.float64, count=len(bars))
    closes = _closes(bars)

    prev_close = closes[:-1]
    hl = highs[1:] - lows[1:]
    hc = np.abs(highs[1:] - prev_close)
    lc = np.abs(lows[1:] - prev_close)
    return np.maximum(hl, np.maximum(hc, lc)).tolist()


def atr(bars: Sequence[Bar], period: int = 14) -> float:
    """
    Calculate Average True Range.

    Simple mean of the true ranges of bars[1..period].

    Args:
        bars: Ordered bar window, at least period + 1 bars
        period: ATR period

    Returns:
        ATR value, or 0.0 if there is not enough data
    """
    if len(bars) < period + 1:
        return 0.0
    tr = true_range(bars[: period + 1])
    return float(np.mean(tr))


def ema(bars: Sequence[Bar], period: int) -> float:
    """
    Calculate Exponential Moving Average of closes.

    Smoothing factor 2 / (period + 1), seeded with the first close and
    propagated through the whole window.

    Args:
        bars: Ordered bar window, at least ``period`` bars
        period: EMA period

    Returns:
        EMA at the last bar, or 0.0 if there is not enough data
    """
    if len(bars) < period:
        return 0.0

    closes = _closes(bars)
    k = 2.0 / (period + 1)
    value = closes[0]
    for close in closes[1:]:
        value = close * k + value * (1 - k)
    return float(value)


def vwap(bars: Sequence[Bar]) -> float:
    """
    Calculate Volume Weighted Average Price over the entire window.

    Args:
        bars: Ordered bar window

    Returns:
        Cumulative VWAP, or 0.0 for an empty window or zero volume
    """
    if not bars:
        return 0.0

    typical = np.fromiter((b.typical_price for b in bars), dtype=np.float64, count=len(bars))
    volumes = np.fromiter((b.volume for b in bars), dtype=np.float64, count=len(bars))
    total_volume = volumes.sum()
    if total_volume <= 0:
        return 0.0
    return float((typical * volumes).sum() / total_volume)


def rsi(bars: Sequence[Bar], period: int = 14) -> float:
    """
    Calculate Relative Strength Index from the first ``period`` close deltas.

    Args:
        bars: Ordered bar window, at least period + 1 bars
        period: RSI period

    Returns:
        RSI in [0, 100]; 100 when there were no losses; 0.0 if not enough data
    """
    if len(bars) < period + 1:
        return 0.0

    deltas = np.diff(_closes(bars[: period + 1]))
    avg_gain = deltas[deltas > 0].sum() / period
    avg_loss = -deltas[deltas < 0].sum() / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(100 - 100 / (1 + rs))


def macd(
    bars: Sequence[Bar],
    fast: int = 12,
    slow: int = 26,
    signal_period: int = 9,
) -> tuple[float, float, float]:
    """
    Calculate MACD line, signal line, and histogram.

    macd = EMA(fast) - EMA(slow); signal = EMA(signal_period) of closes.

    Returns:
        Tuple of (macd, signal, histogram), all 0.0 if there is not enough data
    """
    if len(bars) < slow + signal_period:
        return 0.0, 0.0, 0.0

    macd_line = ema(bars, fast) - ema(bars, slow)
    signal_line = ema(bars, signal_period)
    return macd_line, signal_line, macd_line - signal_line


# =============================================================================
# IndicatorCalculator class
# =============================================================================

class IndicatorCalculator:
    """Calculator for all indicators needed by the signal detectors."""

    def __init__(
        self,
        atr_period: int = 14,
        fast_ema_period: int = 20,
        slow_ema_period: int = 50,
        rsi_period: int = 14,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
    ):
        self.atr_period = atr_period
        self.fast_ema_period = fast_ema_period
        self.slow_ema_period = slow_ema_period
        self.rsi_period = rsi_period
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal

    def calculate(
        self,
        bars: Sequence[Bar],
        enriched: dict[str, float | None] | None = None,
    ) -> IndicatorSnapshot:
        """
        Calculate an indicator snapshot at the last bar of the window.

        Args:
            bars: Ordered bar window
            enriched: Optional externally supplied values that replace the
                locally computed ones field by field

        Returns:
            IndicatorSnapshot for the last bar
        """
        macd_line, signal_line, histogram = macd(
            bars, self.macd_fast, self.macd_slow, self.macd_signal
        )
        snapshot = IndicatorSnapshot(
            atr=atr(bars, self.atr_period),
            ema20=ema(bars, self.fast_ema_period),
            ema50=ema(bars, self.slow_ema_period),
            vwap=vwap(bars),
            rsi=rsi(bars, self.rsi_period),
            macd=macd_line,
            macd_signal=signal_line,
            macd_histogram=histogram,
        )
        return snapshot.with_overrides(enriched)
