"""CLI entry point for the backtesting system.

Bars come from Polygon and (optionally) indicators from Twelve Data; both
clients share one throttled gateway. Signals are written to an in-memory
ledger by default or to PostgreSQL with --ledger postgres.

Usage:
    python -m backtest --symbols AAPL,MSFT --start 2024-01-01 --end 2024-06-30
    python -m backtest --config backtest.yaml --output results.json
    python -m backtest --symbols SPY --start 2024-01-01 --end 2024-03-31 --enriched
    python -m backtest --ledger postgres --performance
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime, timezone

# Add backend to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.clients.gateway import ThrottledFetchGateway
from app.clients.polygon_rest import PolygonRestClient
from app.clients.twelvedata_rest import TwelveDataRestClient
from app.config import get_settings
from core.errors import ConfigurationError, PersistenceError
from core.models import Timeframe

from backtest.config import BacktestConfig, get_backtest_settings, load_backtest_config
from backtest.engine import BacktestEngine
from backtest.ledger import InMemorySignalLedger
from backtest.report import ReportFormatter
from backtest.storage.database import LedgerDatabase
from backtest.storage.signal_ledger import PostgresSignalLedger

logger = logging.getLogger("backtest")

DEFAULT_SYMBOLS = "SPY,QQQ,AAPL"


def parse_date(date_str: str) -> datetime:
    """Parse YYYY-MM-DD to timezone-aware datetime."""
    try:
        dt = datetime.strptime(date_str, "%Y-%m-%d")
        return dt.replace(tzinfo=timezone.utc)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid date format: {date_str} (expected YYYY-MM-DD)"
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Backtest the confluence signal engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m backtest --symbols AAPL,MSFT --start 2024-01-01 --end 2024-06-30
  python -m backtest --config backtest.yaml --output results.json
  python -m backtest --symbols SPY --start 2024-01-01 --end 2024-03-31 --timeframe 60 --enriched
  python -m backtest --ledger postgres --performance
        """,
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="YAML run definition (overrides the flags below)",
    )
    parser.add_argument(
        "--symbols",
        type=str,
        default=DEFAULT_SYMBOLS,
        help=f"Comma-separated symbols (default: {DEFAULT_SYMBOLS})",
    )
    parser.add_argument(
        "--start",
        type=parse_date,
        default=None,
        help="Start date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--end",
        type=parse_date,
        default=None,
        help="End date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--timeframe",
        type=str,
        default=Timeframe.HOUR_1.value,
        choices=[t.value for t in Timeframe],
        help="Bar timeframe (default: 60)",
    )
    parser.add_argument(
        "--balance",
        type=float,
        default=100_000.0,
        help="Initial balance (default: 100000)",
    )
    parser.add_argument(
        "--enriched",
        action="store_true",
        help="Blend Twelve Data indicators into the local ones",
    )
    parser.add_argument(
        "--ledger",
        choices=["memory", "postgres"],
        default="memory",
        help="Where to record signals (default: memory)",
    )
    parser.add_argument(
        "--performance",
        action="store_true",
        help="Print the ledger performance summary and exit",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file path for JSON results",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BacktestConfig:
    """Resolve the run definition from --config or the individual flags."""
    if args.config:
        return load_backtest_config(args.config)

    if args.start is None or args.end is None:
        raise ConfigurationError("--start and --end are required without --config")

    # End date should include the full day
    end_date = args.end.replace(hour=23, minute=59, second=59)
    return BacktestConfig.build(
        symbols=[s for s in args.symbols.split(",") if s.strip()],
        from_date=args.start,
        to_date=end_date,
        timeframe=args.timeframe,
        initial_balance=args.balance,
        use_enriched_indicators=args.enriched,
    )


async def cmd_performance(ledger: PostgresSignalLedger) -> None:
    """Print the stored signal performance summary."""
    perf = await ledger.get_signal_performance()
    print(f"\n{'Signals':>8} {'Open':>6} {'Wins':>6} {'Losses':>7} {'BE':>4} {'Win%':>7} {'Total P&L':>12}")
    print("-" * 60)
    print(
        f"{perf.total_signals:>8} {perf.open_signals:>6} {perf.winning_signals:>6} "
        f"{perf.losing_signals:>7} {perf.breakeven_signals:>4} {perf.win_rate * 100:>6.1f}% "
        f"{perf.total_pnl:>+12.2f}"
    )
    print(
        f"\nEnriched win rate: {perf.enriched_win_rate * 100:.1f}%   "
        f"Local win rate: {perf.local_win_rate * 100:.1f}%\n"
    )


async def cmd_run_backtest(args: argparse.Namespace, ledger) -> None:
    """Run a backtest."""
    config = build_config(args)
    settings = get_settings()

    print(f"\nBacktest: {', '.join(config.symbols)}")
    print(f"Period: {config.from_date:%Y-%m-%d} → {config.to_date:%Y-%m-%d}")
    print(f"Timeframe: {config.timeframe.value}")

    gateway = ThrottledFetchGateway(settings.rate_limits())
    bars = PolygonRestClient(
        settings.polygon_api_key,
        settings.polygon_base_url,
        gateway=gateway,
        timeout=settings.request_timeout,
    )
    indicators = None
    if config.use_enriched_indicators:
        indicators = TwelveDataRestClient(
            settings.twelvedata_api_key,
            settings.twelvedata_base_url,
            gateway=gateway,
            timeout=settings.request_timeout,
        )

    try:
        engine = BacktestEngine(
            config=config,
            bar_source=bars,
            ledger=ledger,
            indicator_source=indicators,
        )

        print("\nRunning backtest...")
        result = await engine.run()
    finally:
        await bars.close()
        if indicators is not None:
            await indicators.close()
        await gateway.close()

    # Print console report
    ReportFormatter.print_console(result)

    # Optional: save JSON
    if args.output:
        ReportFormatter.save_json(result, args.output)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if args.ledger == "memory":
        if args.performance:
            print("Error: --performance requires --ledger postgres")
            return 1
        try:
            await cmd_run_backtest(args, InMemorySignalLedger())
        except ConfigurationError as e:
            print(f"Error: {e}")
            return 1
        return 0

    db = LedgerDatabase(get_backtest_settings().database_url)
    try:
        await db.init()
    except PersistenceError as e:
        print(f"Error: {e}")
        return 1

    try:
        ledger = PostgresSignalLedger(db.pool)
        if args.performance:
            await cmd_performance(ledger)
        else:
            await cmd_run_backtest(args, ledger)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1
    finally:
        await db.close()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
