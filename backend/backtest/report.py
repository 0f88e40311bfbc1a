"""Report formatting for backtest results.

Outputs results to console (formatted tables) and JSON files.
"""

from __future__ import annotations

from pathlib import Path

import orjson

from backtest.stats import BacktestResult, GroupStats


def _print_groups(title: str, label: str, groups: list[GroupStats]) -> None:
    if not groups:
        return
    print("\n" + "-" * 70)
    print(f"  {title}")
    print("-" * 70)
    print(f"  {label:<14} {'Total':>6} {'Wins':>6} {'Losses':>6} {'BE':>4} {'Win%':>7} {'P&L':>12}")
    for g in groups:
        print(
            f"  {g.key:<14} {g.total:>6} {g.wins:>6} {g.losses:>6} {g.breakeven:>4} "
            f"{g.win_rate * 100:>6.1f}% {g.total_pnl:>+12.2f}"
        )


def _group_dict(label: str, groups: list[GroupStats]) -> list[dict]:
    return [
        {
            label: g.key,
            "total": g.total,
            "wins": g.wins,
            "losses": g.losses,
            "breakeven": g.breakeven,
            "win_rate": round(g.win_rate, 4),
            "total_pnl": round(g.total_pnl, 2),
        }
        for g in groups
    ]


class ReportFormatter:
    """Format backtest results for display and export."""

    @staticmethod
    def print_console(result: BacktestResult) -> None:
        """Print formatted report to console."""
        print("\n" + "=" * 70)
        print("  BACKTEST RESULTS")
        print("=" * 70)
        if result.equity_curve:
            start = result.equity_curve[0].date
            end = result.equity_curve[-1].date
            print(f"  Period: {start:%Y-%m-%d} → {end:%Y-%m-%d}")

        # Overall
        print("\n" + "-" * 70)
        print("  OVERALL")
        print("-" * 70)
        print(f"  Total signals:   {result.total_signals}")
        print(f"  Wins:            {result.winning_signals}")
        print(f"  Losses:          {result.losing_signals}")
        print(f"  Breakeven:       {result.breakeven_signals}")
        print(f"  Win rate:        {result.win_rate * 100:.1f}%")
        print(f"  Total P&L:       {result.total_pnl:+.2f}")
        print(f"  Average P&L:     {result.average_pnl:+.2f}")
        print(f"  Initial balance: {result.initial_balance:.2f}")
        print(f"  Final balance:   {result.final_balance:.2f} ({result.return_percentage:+.2f}%)")
        print(f"  Max drawdown:    {result.max_drawdown * 100:.2f}%")
        print(f"  Sharpe ratio:    {result.sharpe_ratio:.3f}")
        if result.ledger_errors:
            print(f"  Ledger errors:   {result.ledger_errors} (outcome trail incomplete)")

        _print_groups("BY SYMBOL", "Symbol", result.by_symbol)
        _print_groups("BY SIGNAL TYPE", "Type", result.by_signal_type)
        _print_groups("BY DIRECTION", "Direction", result.by_direction)

        # Daily P&L (last 10 days)
        if result.daily_pnl:
            print("\n" + "-" * 70)
            print("  DAILY P&L (last 10 days)")
            print("-" * 70)
            print(f"  {'Date':<12} {'Trades':>7} {'P&L':>12} {'Cumulative':>12}")
            for d in result.daily_pnl[-10:]:
                print(f"  {d.date:<12} {d.trades:>7} {d.pnl:>+12.2f} {d.cumulative_pnl:>+12.2f}")

        print("\n" + "=" * 70)

    @staticmethod
    def to_dict(result: BacktestResult) -> dict:
        """Convert results to a JSON-serializable dict."""
        return {
            "overall": {
                "total_signals": result.total_signals,
                "winning_signals": result.winning_signals,
                "losing_signals": result.losing_signals,
                "breakeven_signals": result.breakeven_signals,
                "win_rate": round(result.win_rate, 4),
                "total_pnl": round(result.total_pnl, 2),
                "average_pnl": round(result.average_pnl, 2),
                "max_drawdown": round(result.max_drawdown, 6),
                "sharpe_ratio": round(result.sharpe_ratio, 6),
                "initial_balance": result.initial_balance,
                "final_balance": round(result.final_balance, 2),
                "return_percentage": round(result.return_percentage, 4),
                "ledger_errors": result.ledger_errors,
            },
            "by_symbol": _group_dict("symbol", result.by_symbol),
            "by_signal_type": _group_dict("signal_type", result.by_signal_type),
            "by_direction": _group_dict("direction", result.by_direction),
            "daily_pnl": [
                {
                    "date": d.date,
                    "trades": d.trades,
                    "pnl": d.pnl,
                    "cumulative_pnl": d.cumulative_pnl,
                }
                for d in result.daily_pnl
            ],
            "equity_curve": [
                {"date": p.date.isoformat(), "balance": round(p.balance, 2)}
                for p in result.equity_curve
            ],
            "signals": [s.model_dump(mode="json") for s in result.signals],
        }

    @staticmethod
    def save_json(result: BacktestResult, filepath: str | Path) -> None:
        """Save results to a JSON file."""
        data = ReportFormatter.to_dict(result)
        Path(filepath).write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
        print(f"\nResults saved to {filepath}")
