"""Tests for StatisticsCalculator backtest statistics."""

import pytest
from datetime import datetime, timedelta, timezone

from core.models import (
    Direction,
    IndicatorSnapshot,
    Outcome,
    SignalType,
    TradingSignal,
)
from backtest.stats import EquityCurvePoint, StatisticsCalculator


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

BASE = datetime(2024, 3, 1, 14, 0, tzinfo=timezone.utc)


def make_signal(
    symbol: str = "SPY",
    pnl: float = 100.0,
    outcome: Outcome = Outcome.WIN,
    signal_type: SignalType = SignalType.BREAKOUT,
    direction: Direction = Direction.LONG,
    closed_at: datetime | None = None,
    offset_hours: int = 0,
) -> TradingSignal:
    """Build a closed TradingSignal with sensible defaults for testing."""
    ts = BASE + timedelta(hours=offset_hours)
    return TradingSignal(
        symbol=symbol,
        timestamp=ts,
        signal_type=signal_type,
        direction=direction,
        price=100.0,
        quantity=10,
        stop_loss=97.0 if direction == Direction.LONG else 103.0,
        take_profit=104.5 if direction == Direction.LONG else 95.5,
        indicators=IndicatorSnapshot(atr=1.5),
        confluence_score=0.765,
        reason_codes=["EMA_ABOVE"],
        risk_reward_ratio=1.5,
        outcome=outcome,
        pnl=pnl,
        closed_at=closed_at or ts + timedelta(hours=2),
    )


def curve(*balances: float) -> list[EquityCurvePoint]:
    return [
        EquityCurvePoint(BASE + timedelta(days=i), b) for i, b in enumerate(balances)
    ]


def _calc(signals, equity=None, initial=10_000.0, final=None):
    if final is None:
        final = initial + sum(s.pnl or 0.0 for s in signals)
    return StatisticsCalculator().calculate(
        signals, equity if equity is not None else curve(initial, final), initial, final
    )


# ---------------------------------------------------------------------------
# Overall
# ---------------------------------------------------------------------------

class TestOverall:
    def test_empty(self):
        result = _calc([])

        assert result.total_signals == 0
        assert result.win_rate == 0.0
        assert result.average_pnl == 0.0
        assert result.return_percentage == 0.0
        assert result.sharpe_ratio == 0.0

    def test_counts_and_pnl(self):
        signals = [
            make_signal(pnl=300.0, offset_hours=0),
            make_signal(pnl=-100.0, outcome=Outcome.LOSS, offset_hours=1),
            make_signal(pnl=0.0, outcome=Outcome.BREAKEVEN, offset_hours=2),
            make_signal(pnl=200.0, offset_hours=3),
        ]
        result = _calc(signals)

        assert result.total_signals == 4
        assert result.winning_signals == 2
        assert result.losing_signals == 1
        assert result.breakeven_signals == 1
        assert result.win_rate == pytest.approx(0.5)
        assert result.total_pnl == pytest.approx(400.0)
        assert result.average_pnl == pytest.approx(100.0)
        assert result.return_percentage == pytest.approx(4.0)

    def test_ledger_errors_carried(self):
        result = StatisticsCalculator().calculate([], [], 1000.0, 1000.0, ledger_errors=2)
        assert result.ledger_errors == 2


# ---------------------------------------------------------------------------
# Drawdown / Sharpe
# ---------------------------------------------------------------------------

class TestDrawdown:
    def test_peak_to_trough(self):
        result = _calc([], equity=curve(10_000, 12_000, 9_000, 11_000), final=11_000)
        assert result.max_drawdown == pytest.approx(0.25)

    def test_drop_from_initial(self):
        result = _calc([], equity=curve(9_500, 9_000), initial=10_000, final=9_000)
        assert result.max_drawdown == pytest.approx(0.10)

    def test_monotonic_curve(self):
        result = _calc([], equity=curve(10_000, 10_500, 11_000), final=11_000)
        assert result.max_drawdown == 0.0

    def test_bounded(self):
        result = _calc([], equity=curve(10_000, -500), final=-500)
        assert result.max_drawdown == 1.0


class TestSharpe:
    def test_flat_curve(self):
        result = _calc([], equity=curve(10_000, 10_000, 10_000), final=10_000)
        assert result.sharpe_ratio == 0.0

    def test_mean_over_stdev(self):
        # returns +10%, -10%... mean 0 -> Sharpe 0
        result = _calc([], equity=curve(100, 110, 99), initial=100, final=99)
        assert result.sharpe_ratio == pytest.approx(0.0)

    def test_positive(self):
        # returns +10%, +20%: mean 0.15, pstdev 0.05
        result = _calc([], equity=curve(100, 110, 132), initial=100, final=132)
        assert result.sharpe_ratio == pytest.approx(3.0)

    def test_single_point(self):
        result = _calc([], equity=curve(100), initial=100, final=100)
        assert result.sharpe_ratio == 0.0


# ---------------------------------------------------------------------------
# Breakdowns
# ---------------------------------------------------------------------------

class TestBreakdowns:
    def test_by_symbol_sorted_by_count(self):
        signals = [
            make_signal("AAPL", offset_hours=0),
            make_signal("QQQ", pnl=-50.0, outcome=Outcome.LOSS, offset_hours=1),
            make_signal("QQQ", offset_hours=2),
            make_signal("SPY", offset_hours=3),
        ]
        result = _calc(signals)

        assert [g.key for g in result.by_symbol] == ["QQQ", "AAPL", "SPY"]
        qqq = result.by_symbol[0]
        assert qqq.total == 2
        assert qqq.wins == 1
        assert qqq.losses == 1
        assert qqq.win_rate == pytest.approx(0.5)
        assert qqq.total_pnl == pytest.approx(50.0)

    def test_by_signal_type_and_direction(self):
        signals = [
            make_signal(signal_type=SignalType.PULLBACK, direction=Direction.SHORT),
            make_signal(signal_type=SignalType.BREAKOUT, offset_hours=1),
        ]
        result = _calc(signals)

        assert {g.key for g in result.by_signal_type} == {"PULLBACK", "BREAKOUT"}
        assert [g.key for g in result.by_direction] == ["LONG", "SHORT"]


class TestDailyPnL:
    def test_grouped_by_close_date(self):
        day1 = datetime(2024, 3, 1, 20, 0, tzinfo=timezone.utc)
        day2 = datetime(2024, 3, 2, 15, 0, tzinfo=timezone.utc)
        signals = [
            make_signal(pnl=100.0, closed_at=day1, offset_hours=0),
            make_signal(pnl=-40.0, outcome=Outcome.LOSS, closed_at=day1, offset_hours=1),
            make_signal(pnl=25.5, closed_at=day2, offset_hours=2),
        ]
        result = _calc(signals)

        assert [d.date for d in result.daily_pnl] == ["2024-03-01", "2024-03-02"]
        assert result.daily_pnl[0].trades == 2
        assert result.daily_pnl[0].pnl == pytest.approx(60.0)
        assert result.daily_pnl[1].cumulative_pnl == pytest.approx(85.5)
