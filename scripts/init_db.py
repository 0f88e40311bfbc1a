#!/usr/bin/env python3
"""Create the signal ledger table in the configured PostgreSQL database."""

import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from backtest.config import get_backtest_settings
from backtest.storage import LedgerDatabase
from core.errors import PersistenceError


async def main() -> int:
    print("Initializing signal ledger...")
    db = LedgerDatabase(get_backtest_settings().database_url)
    try:
        await db.init()
    except PersistenceError as e:
        print(f"Error: {e}")
        return 1
    print("Ledger initialized. Table: trade_signals")
    await db.close()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
