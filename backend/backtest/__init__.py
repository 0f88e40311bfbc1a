"""Walk-forward backtesting for the confluence signal engine.

Depends on core/ for business logic and on app/ only through the
HistoricalBarSource / IndicatorSource protocols.

Ledgers:
- InMemorySignalLedger (default)
- PostgresSignalLedger via asyncpg

Usage:
    python -m backtest --symbols AAPL,MSFT --start 2024-01-01 --end 2024-06-30
    python -m backtest --config backtest.yaml --output results.json
"""

from backtest.config import BacktestConfig, load_backtest_config
from backtest.engine import BacktestEngine
from backtest.stats import BacktestResult

__all__ = ["BacktestConfig", "BacktestEngine", "BacktestResult", "load_backtest_config"]
