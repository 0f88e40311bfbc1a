"""Price bar (OHLCV) data models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class Timeframe(str, Enum):
    """Bar interval accepted by the historical bar providers."""

    MINUTE_1 = "1"
    MINUTE_5 = "5"
    MINUTE_15 = "15"
    MINUTE_30 = "30"
    HOUR_1 = "60"
    DAY_1 = "D"
    WEEK_1 = "W"
    MONTH_1 = "M"


class Bar(BaseModel):
    """One OHLCV observation for a symbol over a fixed interval.

    Bars are immutable once produced and ordered by timestamp per symbol.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    vwap: float | None = None
    timeframe: Timeframe = Timeframe.DAY_1

    @property
    def is_bullish(self) -> bool:
        """Check if this is a bullish (green) candle."""
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        """Check if this is a bearish (red) candle."""
        return self.close < self.open

    @property
    def typical_price(self) -> float:
        """(high + low + close) / 3, the price VWAP weights by volume."""
        return (self.high + self.low + self.close) / 3

    @property
    def range_size(self) -> float:
        """Get the full range (high - low) of the candle."""
        return self.high - self.low
