"""Data models shared by the core, the providers, and the backtester."""

from core.models.bar import Bar, Timeframe
from core.models.config import KillZone, RiskParameters
from core.models.order import (
    AccountBalance,
    IndicatorValue,
    OrderResponse,
    Position,
    Quote,
    TradeOrder,
)
from core.models.signal import (
    CONFLUENCE_WEIGHTS,
    ConfluenceFactors,
    Direction,
    ExitReason,
    IndicatorSnapshot,
    Outcome,
    SignalType,
    TradingMode,
    TradingSignal,
    classify_outcome,
)

__all__ = [
    "AccountBalance",
    "Bar",
    "CONFLUENCE_WEIGHTS",
    "ConfluenceFactors",
    "Direction",
    "ExitReason",
    "IndicatorSnapshot",
    "IndicatorValue",
    "KillZone",
    "OrderResponse",
    "Outcome",
    "Position",
    "Quote",
    "RiskParameters",
    "SignalType",
    "Timeframe",
    "TradeOrder",
    "TradingMode",
    "TradingSignal",
    "classify_outcome",
]
