"""Technical indicators over bar windows (pure math, no I/O)."""

from core.indicators.indicators import (
    atr,
    ema,
    macd,
    rsi,
    true_range,
    vwap,
    IndicatorCalculator,
)

__all__ = [
    "atr",
    "ema",
    "macd",
    "rsi",
    "true_range",
    "vwap",
    "IndicatorCalculator",
]
