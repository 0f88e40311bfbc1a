"""Backtest storage layer: PostgreSQL signal ledger on a shared asyncpg pool."""

from backtest.storage.database import LedgerDatabase
from backtest.storage.signal_ledger import PostgresSignalLedger

__all__ = [
    "LedgerDatabase",
    "PostgresSignalLedger",
]
