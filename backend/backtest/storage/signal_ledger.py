"""PostgreSQL-backed signal ledger.

Uses the shared asyncpg pool and the trade_signals table. Every asyncpg
failure is re-raised as PersistenceError so the simulator can log it and
carry on.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime

import asyncpg
import orjson

from core.errors import PersistenceError
from core.models.signal import Outcome, TradingMode, TradingSignal

from backtest.ledger import SignalPerformance

logger = logging.getLogger(__name__)


class PostgresSignalLedger:
    """Persist the signal lifecycle in PostgreSQL."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    @asynccontextmanager
    async def _connection(self, action: str):
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except asyncpg.PostgresError as e:
            raise PersistenceError(f"Ledger {action} failed: {e}") from e

    # ── Signal lifecycle ────────────────────────────────────────

    async def log_signal(self, signal: TradingSignal) -> None:
        """Insert a signal; re-logging the same id refreshes its fields."""
        async with self._connection("log_signal") as conn:
            await conn.execute(
                """INSERT INTO trade_signals
                   (id, symbol, timestamp, signal_type, direction, price, quantity,
                    stop_loss, take_profit, indicators, confluence_score,
                    reason_codes, risk_reward_ratio, mode, is_enriched, max_risk,
                    outcome)
                   VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10::jsonb,$11,$12::jsonb,
                           $13,$14,$15,$16,$17)
                   ON CONFLICT (id) DO UPDATE SET
                    quantity=EXCLUDED.quantity,
                    confluence_score=EXCLUDED.confluence_score,
                    indicators=EXCLUDED.indicators,
                    updated_at=NOW()""",
                signal.id,
                signal.symbol,
                signal.timestamp,
                signal.signal_type.value,
                signal.direction.value,
                signal.price,
                signal.quantity,
                signal.stop_loss,
                signal.take_profit,
                orjson.dumps(signal.indicators.model_dump()).decode(),
                signal.confluence_score,
                orjson.dumps(signal.reason_codes).decode(),
                signal.risk_reward_ratio,
                signal.mode.value,
                signal.is_enriched,
                signal.max_risk,
                signal.outcome.value,
            )

    async def update_signal_execution(
        self,
        signal_id: str,
        order_id: str,
        executed_price: float,
        executed_quantity: int,
        *,
        executed_at: datetime | None = None,
    ) -> None:
        async with self._connection("update_signal_execution") as conn:
            result = await conn.execute(
                """UPDATE trade_signals SET
                    order_id=$2, executed_price=$3, executed_quantity=$4,
                    executed_at=COALESCE($5, NOW()), updated_at=NOW()
                   WHERE id=$1""",
                signal_id,
                order_id,
                executed_price,
                executed_quantity,
                executed_at,
            )
        if result == "UPDATE 0":
            raise PersistenceError(f"Unknown signal id: {signal_id}")

    async def update_signal_outcome(
        self,
        signal_id: str,
        outcome: Outcome,
        pnl: float | None = None,
        exit_price: float | None = None,
        exit_quantity: int | None = None,
        *,
        closed_at: datetime | None = None,
    ) -> None:
        async with self._connection("update_signal_outcome") as conn:
            result = await conn.execute(
                """UPDATE trade_signals SET
                    outcome=$2, pnl=$3, exit_price=$4, exit_quantity=$5,
                    closed_at=COALESCE($6, NOW()), updated_at=NOW()
                   WHERE id=$1""",
                signal_id,
                outcome.value,
                pnl,
                exit_price,
                exit_quantity,
                closed_at,
            )
        if result == "UPDATE 0":
            raise PersistenceError(f"Unknown signal id: {signal_id}")

    # ── Query methods ───────────────────────────────────────────

    async def get_signal_performance(
        self,
        symbol: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        mode: TradingMode | None = None,
    ) -> SignalPerformance:
        """Outcome summary, optionally filtered by symbol, range and mode."""
        async with self._connection("get_signal_performance") as conn:
            row = await conn.fetchrow(
                """SELECT
                    COUNT(*) AS total,
                    COUNT(*) FILTER (WHERE outcome='WIN') AS wins,
                    COUNT(*) FILTER (WHERE outcome='LOSS') AS losses,
                    COUNT(*) FILTER (WHERE outcome='BREAKEVEN') AS breakeven,
                    COUNT(*) FILTER (WHERE outcome='OPEN') AS open,
                    COALESCE(SUM(pnl), 0) AS total_pnl,
                    COALESCE(AVG(pnl), 0) AS average_pnl,
                    COUNT(*) FILTER (WHERE is_enriched AND outcome<>'OPEN') AS enriched_closed,
                    COUNT(*) FILTER (WHERE is_enriched AND outcome='WIN') AS enriched_wins,
                    COUNT(*) FILTER (WHERE NOT is_enriched AND outcome<>'OPEN') AS local_closed,
                    COUNT(*) FILTER (WHERE NOT is_enriched AND outcome='WIN') AS local_wins
                   FROM trade_signals
                   WHERE ($1::text IS NULL OR symbol=$1)
                     AND ($2::timestamptz IS NULL OR timestamp >= $2)
                     AND ($3::timestamptz IS NULL OR timestamp <= $3)
                     AND ($4::text IS NULL OR mode=$4)""",
                symbol,
                from_date,
                to_date,
                mode.value if mode else None,
            )

        closed = row["total"] - row["open"]
        return SignalPerformance(
            total_signals=row["total"],
            winning_signals=row["wins"],
            losing_signals=row["losses"],
            breakeven_signals=row["breakeven"],
            open_signals=row["open"],
            win_rate=row["wins"] / closed if closed else 0.0,
            average_pnl=float(row["average_pnl"]),
            total_pnl=float(row["total_pnl"]),
            enriched_win_rate=(
                row["enriched_wins"] / row["enriched_closed"] if row["enriched_closed"] else 0.0
            ),
            local_win_rate=(
                row["local_wins"] / row["local_closed"] if row["local_closed"] else 0.0
            ),
        )
