"""PostgreSQL database for the signal ledger.

Manages a single asyncpg connection pool and creates the trade_signals
table on init.
"""

from __future__ import annotations

import logging

import asyncpg

from core.errors import PersistenceError

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS trade_signals (
    id                  TEXT PRIMARY KEY,
    symbol              VARCHAR(20) NOT NULL,
    timestamp           TIMESTAMPTZ NOT NULL,
    signal_type         VARCHAR(20) NOT NULL,
    direction           VARCHAR(5) NOT NULL,
    price               DOUBLE PRECISION NOT NULL,
    quantity            INTEGER NOT NULL DEFAULT 0,
    stop_loss           DOUBLE PRECISION NOT NULL,
    take_profit         DOUBLE PRECISION NOT NULL,
    indicators          JSONB NOT NULL,
    confluence_score    DOUBLE PRECISION NOT NULL,
    reason_codes        JSONB NOT NULL,
    risk_reward_ratio   DOUBLE PRECISION NOT NULL,
    mode                VARCHAR(10) NOT NULL,
    is_enriched         BOOLEAN NOT NULL DEFAULT FALSE,
    max_risk            DOUBLE PRECISION,
    order_id            TEXT,
    executed_at         TIMESTAMPTZ,
    executed_price      DOUBLE PRECISION,
    executed_quantity   INTEGER,
    outcome             VARCHAR(10) NOT NULL DEFAULT 'OPEN',
    pnl                 DOUBLE PRECISION,
    exit_price          DOUBLE PRECISION,
    exit_quantity       INTEGER,
    closed_at           TIMESTAMPTZ,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_trade_signals_symbol_ts
    ON trade_signals(symbol, timestamp);
CREATE INDEX IF NOT EXISTS idx_trade_signals_outcome
    ON trade_signals(outcome);
"""


class LedgerDatabase:
    """Asyncpg connection pool for the signal ledger."""

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._pool: asyncpg.Pool | None = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._pool

    async def init(self) -> None:
        """Create connection pool and ensure the ledger table exists."""
        try:
            self._pool = await asyncpg.create_pool(
                self._database_url,
                min_size=1,
                max_size=5,
                command_timeout=60,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceError(f"Cannot initialize ledger database: {e}") from e
        logger.info("Ledger database initialized")

    async def close(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
