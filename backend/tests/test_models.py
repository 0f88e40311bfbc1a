"""Tests for shared domain models."""

import pytest
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from core.models import (
    Bar,
    Direction,
    IndicatorSnapshot,
    KillZone,
    Outcome,
    RiskParameters,
    SignalType,
    TradingSignal,
    classify_outcome,
)

T0 = datetime(2024, 1, 2, 15, 0, tzinfo=timezone.utc)


def make_signal(direction: Direction = Direction.LONG, **kwargs) -> TradingSignal:
    fields = dict(
        symbol="QQQ",
        timestamp=T0,
        signal_type=SignalType.PULLBACK,
        direction=direction,
        price=100.0,
        stop_loss=96.0 if direction == Direction.LONG else 104.0,
        take_profit=106.0 if direction == Direction.LONG else 94.0,
        indicators=IndicatorSnapshot(atr=2.0),
        confluence_score=0.7,
        reason_codes=["EMA_SUPPORT"],
        risk_reward_ratio=1.5,
    )
    fields.update(kwargs)
    return TradingSignal(**fields)


class TestBar:
    def test_properties(self):
        bar = Bar(symbol="SPY", timestamp=T0, open=10, high=12, low=9, close=11, volume=100)
        assert bar.is_bullish
        assert not bar.is_bearish
        assert bar.typical_price == pytest.approx(32 / 3)
        assert bar.range_size == 3

    def test_frozen(self):
        bar = Bar(symbol="SPY", timestamp=T0, open=10, high=12, low=9, close=11, volume=100)
        with pytest.raises(ValidationError):
            bar.close = 20


class TestTradingSignal:
    def test_id_is_deterministic(self):
        assert make_signal().id == make_signal(price=101.0).id

    def test_id_varies_with_direction(self):
        assert make_signal().id != make_signal(Direction.SHORT).id

    def test_id_varies_with_time(self):
        assert make_signal().id != make_signal(timestamp=T0 + timedelta(hours=1)).id

    def test_reason_codes_required(self):
        with pytest.raises(ValidationError):
            make_signal(reason_codes=[])

    def test_confluence_bounded(self):
        with pytest.raises(ValidationError):
            make_signal(confluence_score=1.2)

    def test_long_exits(self):
        signal = make_signal()
        assert signal.stop_hit(96.0)
        assert not signal.stop_hit(96.5)
        assert signal.target_hit(106.0)
        assert not signal.target_hit(105.9)

    def test_short_exits(self):
        signal = make_signal(Direction.SHORT)
        assert signal.stop_hit(104.0)
        assert signal.target_hit(93.0)
        assert not signal.target_hit(95.0)

    def test_cost_basis(self):
        signal = make_signal()
        assert signal.cost_basis == 0.0
        assert not signal.is_executed

        signal.executed_at = T0
        signal.executed_price = 100.0
        signal.executed_quantity = 5
        assert signal.is_executed
        assert signal.cost_basis == 500.0
        assert signal.risk_per_share == 4.0


class TestClassifyOutcome:
    @pytest.mark.parametrize(
        "pnl,expected",
        [
            (10.0, Outcome.WIN),
            (0.5, Outcome.WIN),
            (0.0, Outcome.BREAKEVEN),
            (-0.99, Outcome.BREAKEVEN),
            (-1.0, Outcome.LOSS),
            (-250.0, Outcome.LOSS),
        ],
    )
    def test_classification(self, pnl, expected):
        assert classify_outcome(pnl) == expected


class TestIndicatorSnapshot:
    def test_overrides_skip_none_and_unknown(self):
        snap = IndicatorSnapshot(atr=1.0, rsi=50.0)
        updated = snap.with_overrides({"atr": 2.0, "rsi": None, "bogus": 9.0})

        assert updated.atr == 2.0
        assert updated.rsi == 50.0
        assert snap.atr == 1.0


class TestKillZone:
    def test_inclusive_bounds(self):
        zone = KillZone(start="09:30", end="11:00")
        assert zone.contains(zone.start_time)
        assert zone.contains(zone.end_time)

    def test_wraps_midnight(self):
        zone = KillZone(start="22:00", end="02:00")
        assert zone.contains(datetime(2024, 1, 1, 23, 0).time())
        assert zone.contains(datetime(2024, 1, 1, 1, 0).time())
        assert not zone.contains(datetime(2024, 1, 1, 12, 0).time())

    def test_bad_format(self):
        with pytest.raises(ValidationError):
            KillZone(start="9am", end="11:00")


class TestRiskParameters:
    def test_defaults(self):
        params = RiskParameters()
        assert params.min_confluence_score == 0.6
        assert params.min_risk_reward == 2.0
        assert params.max_risk_amount == 500.0

    def test_fixed_budget(self):
        assert RiskParameters(max_risk_amount=250).risk_budget(100_000) == 250

    def test_percent_budget(self):
        params = RiskParameters(max_risk_amount=0, max_risk_percent=1.0)
        assert params.risk_budget(50_000) == pytest.approx(500.0)

    def test_requires_a_budget(self):
        with pytest.raises(ValidationError):
            RiskParameters(max_risk_amount=0, max_risk_percent=0)

    def test_no_zones_always_allowed(self):
        assert RiskParameters().in_kill_zone(T0)

    def test_zone_in_local_time(self):
        params = RiskParameters(
            kill_zones=[KillZone(start="09:30", end="11:00")],
            timezone="America/New_York",
        )
        # 15:00 UTC in January is 10:00 in New York
        assert params.in_kill_zone(T0)
        assert not params.in_kill_zone(T0 + timedelta(hours=3))

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            RiskParameters(timezone="Mars/Olympus")
