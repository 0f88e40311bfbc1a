"""Risk validation and position sizing.

Validation failures are not exceptions: a rejected candidate is simply
dropped by the caller.
"""

import math

from core.models import RiskParameters, TradingSignal

MAX_ATR_PCT = 0.10  # ATR above this fraction of price is too volatile
BALANCE_USAGE = 0.95  # max share of balance one position may tie up


class RiskValidator:
    """Confluence / risk-reward / volatility gates plus the position sizer."""

    def __init__(self, risk_params: RiskParameters | None = None):
        self.risk_params = risk_params or RiskParameters()

    def check(
        self, signal: TradingSignal, params: RiskParameters | None = None
    ) -> str | None:
        """Return the reason a signal is rejected, or None if it passes."""
        params = params or self.risk_params
        if signal.confluence_score < params.min_confluence_score:
            return (
                f"confluence {signal.confluence_score:.3f} < "
                f"{params.min_confluence_score}"
            )
        if signal.risk_reward_ratio and signal.risk_reward_ratio < params.min_risk_reward:
            return (
                f"risk/reward {signal.risk_reward_ratio:.2f} < "
                f"{params.min_risk_reward}"
            )
        atr_value = signal.indicators.atr
        if atr_value and atr_value > signal.price * MAX_ATR_PCT:
            return f"ATR {atr_value:.4f} exceeds {MAX_ATR_PCT:.0%} of price"
        return None

    def validate(
        self, signal: TradingSignal, params: RiskParameters | None = None
    ) -> bool:
        return self.check(signal, params) is None

    def passes_confluence(self, signal: TradingSignal) -> bool:
        return signal.confluence_score >= self.risk_params.min_confluence_score

    @staticmethod
    def size(
        balance: float, risk_budget: float, stop_loss: float, price: float
    ) -> int:
        """Shares to trade for a given risk budget.

        quantity = min(floor(budget / risk_per_share), floor(balance * 0.95 / price))

        Returns:
            Share count, 0 when risk per share or price is not positive
        """
        risk_per_share = abs(price - stop_loss)
        if risk_per_share <= 0 or price <= 0:
            return 0
        by_risk = math.floor(risk_budget / risk_per_share)
        by_balance = math.floor(balance * BALANCE_USAGE / price)
        return max(0, min(by_risk, by_balance))
