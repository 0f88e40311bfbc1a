"""Exception hierarchy shared by the core, the providers, and the backtester.

Signal validation failures are NOT exceptions: a candidate
that fails the confluence, risk/reward, or volatility gates is dropped.
"""


class TradingSystemError(Exception):
    """Base class for all errors raised by this project."""


class ProviderError(TradingSystemError):
    """A market-data, indicator, or execution provider call failed.

    Raised by the REST clients after the gateway's retry budget is spent.
    """

    def __init__(self, provider: str, message: str):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider


class ConfigurationError(TradingSystemError):
    """Risk or backtest configuration is missing or invalid.

    Fatal at run start: a backtest never begins with an invalid config.
    """


class PersistenceError(TradingSystemError):
    """A signal ledger write or query failed.

    The simulation carries on; the ledger trail may be incomplete.
    """
