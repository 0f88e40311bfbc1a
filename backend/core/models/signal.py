"""Signal and trade data models."""

import hashlib
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class SignalType(str, Enum):
    """Pattern that produced a candidate signal."""

    BREAKOUT = "BREAKOUT"
    PULLBACK = "PULLBACK"
    REVERSAL = "REVERSAL"
    CONTINUATION = "CONTINUATION"


class Direction(str, Enum):
    """Trade direction."""

    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        """+1 for LONG, -1 for SHORT."""
        return 1 if self is Direction.LONG else -1


class Outcome(str, Enum):
    """Signal outcome status."""

    OPEN = "OPEN"
    WIN = "WIN"
    LOSS = "LOSS"
    BREAKEVEN = "BREAKEVEN"


class TradingMode(str, Enum):
    BACKTEST = "BACKTEST"
    LIVE = "LIVE"
    PAPER = "PAPER"


class ExitReason(str, Enum):
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    BACKTEST_END = "BACKTEST_END"


# Weights applied to ConfluenceFactors, in field order.
CONFLUENCE_WEIGHTS: dict[str, float] = {
    "trend_alignment": 0.25,
    "volume_confirmation": 0.20,
    "support_resistance": 0.20,
    "momentum_strength": 0.20,
    "volatility_appropriate": 0.15,
}


class IndicatorSnapshot(BaseModel):
    """Indicator values computed over a bar window ending at one bar."""

    atr: float = 0.0
    ema20: float = 0.0
    ema50: float = 0.0
    vwap: float = 0.0
    rsi: float = 0.0
    macd: float = 0.0
    macd_signal: float = 0.0
    macd_histogram: float = 0.0

    def with_overrides(self, enriched: dict[str, float | None] | None) -> "IndicatorSnapshot":
        """Return a copy with externally supplied values replacing local ones.

        Unknown names and None values are ignored, so a partial enrichment
        only replaces the fields it actually carries.
        """
        if not enriched:
            return self
        update = {
            name: float(value)
            for name, value in enriched.items()
            if value is not None and name in type(self).model_fields
        }
        return self.model_copy(update=update)


class ConfluenceFactors(BaseModel):
    """Independent evidence factors behind a candidate, each in [0, 1]."""

    trend_alignment: float = Field(ge=0.0, le=1.0)
    volume_confirmation: float = Field(ge=0.0, le=1.0)
    support_resistance: float = Field(ge=0.0, le=1.0)
    momentum_strength: float = Field(ge=0.0, le=1.0)
    volatility_appropriate: float = Field(ge=0.0, le=1.0)

    @property
    def score(self) -> float:
        """Weighted confluence score in [0, 1]."""
        return sum(
            getattr(self, name) * weight for name, weight in CONFLUENCE_WEIGHTS.items()
        )


def _generate_signal_id(
    symbol: str,
    signal_type: SignalType,
    timestamp: datetime,
    direction: Direction,
) -> str:
    """Generate deterministic signal ID based on signal attributes.

    Replaying the same bars produces the same IDs, so ledger rows from a
    re-run line up with the previous run.
    """
    ts_str = timestamp.strftime("%Y%m%d%H%M%S%f")
    key = f"{symbol}:{signal_type.value}:{ts_str}:{direction.value}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TradingSignal(BaseModel):
    """A scored trade candidate and, once executed, its position lifecycle.

    candidate -> validated -> executed -> open position -> closed
    """

    id: str = ""  # Will be set in model_post_init
    symbol: str
    timestamp: datetime
    signal_type: SignalType
    direction: Direction
    price: float
    quantity: int = 0
    stop_loss: float
    take_profit: float
    indicators: IndicatorSnapshot
    confluence_score: float = Field(ge=0.0, le=1.0)
    reason_codes: list[str] = Field(min_length=1)
    risk_reward_ratio: float
    mode: TradingMode = TradingMode.BACKTEST

    is_enriched: bool = False
    max_risk: float | None = None

    # Execution
    order_id: str | None = None
    executed_at: datetime | None = None
    executed_price: float | None = None
    executed_quantity: int | None = None

    # Outcome
    outcome: Outcome = Outcome.OPEN
    pnl: float | None = None
    exit_price: float | None = None
    exit_quantity: int | None = None
    exit_reason: ExitReason | None = None
    closed_at: datetime | None = None

    created_at: datetime = Field(default_factory=_utcnow)

    def model_post_init(self, __context) -> None:
        """Generate deterministic ID after model initialization."""
        if not self.id:
            object.__setattr__(
                self,
                "id",
                _generate_signal_id(
                    self.symbol, self.signal_type, self.timestamp, self.direction
                ),
            )

    @property
    def is_executed(self) -> bool:
        return self.executed_at is not None

    @property
    def is_closed(self) -> bool:
        return self.outcome != Outcome.OPEN

    @property
    def risk_per_share(self) -> float:
        """Distance from entry to stop loss."""
        return abs(self.price - self.stop_loss)

    @property
    def cost_basis(self) -> float:
        """Capital tied up by the executed position."""
        if self.executed_price is None or self.executed_quantity is None:
            return 0.0
        return self.executed_price * self.executed_quantity

    def stop_hit(self, price: float) -> bool:
        """Direction-aware stop-loss crossing."""
        if self.direction == Direction.LONG:
            return price <= self.stop_loss
        return price >= self.stop_loss

    def target_hit(self, price: float) -> bool:
        """Direction-aware take-profit crossing."""
        if self.direction == Direction.LONG:
            return price >= self.take_profit
        return price <= self.take_profit


def classify_outcome(pnl: float) -> Outcome:
    """WIN if pnl > 0, BREAKEVEN if |pnl| < 1 currency unit, else LOSS."""
    if pnl > 0:
        return Outcome.WIN
    if abs(pnl) < 1:
        return Outcome.BREAKEVEN
    return Outcome.LOSS
