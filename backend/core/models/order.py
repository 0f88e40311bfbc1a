"""Execution venue and indicator provider data shapes.

Only live and paper modes place orders; backtests never touch these.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

OrderStatus = Literal["pending", "filled", "cancelled", "rejected"]


class TradeOrder(BaseModel):
    """Order request sent to an execution venue."""

    symbol: str
    side: Literal["buy", "sell"]
    quantity: int = Field(gt=0)
    type: Literal["market", "limit", "stop", "stop_limit"] = "market"
    price: float | None = None
    stop_price: float | None = None
    time_in_force: Literal["day", "gtc", "ioc", "fok"] = "day"
    extended_hours: bool = False


class OrderResponse(BaseModel):
    order_id: str
    status: OrderStatus
    filled_quantity: float = 0.0
    filled_price: float = 0.0
    commission: float = 0.0
    timestamp: datetime


class AccountBalance(BaseModel):
    account_id: str
    cash: float
    buying_power: float
    day_trading_buying_power: float = 0.0
    equity: float
    long_market_value: float = 0.0
    short_market_value: float = 0.0
    total_market_value: float = 0.0
    timestamp: datetime


class Position(BaseModel):
    """A brokerage position (not a simulated backtest position)."""

    symbol: str
    quantity: float
    average_price: float
    market_value: float
    unrealized_pnl: float
    timestamp: datetime


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    bid: float = 0.0
    ask: float = 0.0
    last: float = 0.0


class IndicatorValue(BaseModel):
    """One indicator reading returned by an indicator provider."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    indicator: str
    value: float
    timestamp: datetime
    parameters: dict[str, Any] | None = None
