"""Tests for pattern detectors and the signal generator."""

import pytest
from datetime import datetime, timedelta, timezone

from core.models import (
    Bar,
    ConfluenceFactors,
    Direction,
    IndicatorSnapshot,
    RiskParameters,
    SignalType,
)
from core.strategy import (
    AggregationPolicy,
    SignalGenerator,
    get_detector,
    list_detectors,
)
from core.strategy.detectors import (
    detect_breakout,
    detect_continuation,
    detect_pullback,
    detect_reversal,
)

T0 = datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc)


def make_bar(close: float, i: int = 0, volume: float = 1000.0) -> Bar:
    return Bar(
        symbol="TEST",
        timestamp=T0 + timedelta(hours=i),
        open=close,
        high=close + 1,
        low=close - 1,
        close=close,
        volume=volume,
    )


def flat_then(last_close: float, last_volume: float, n: int = 50) -> list[Bar]:
    """n flat bars at 100 followed by one bar at last_close."""
    bars = [make_bar(100.0, i) for i in range(n)]
    bars.append(make_bar(last_close, n, volume=last_volume))
    return bars


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_priority_order(self):
        order = [signal_type for signal_type, _ in list_detectors()]
        assert order == [
            SignalType.BREAKOUT,
            SignalType.PULLBACK,
            SignalType.REVERSAL,
            SignalType.CONTINUATION,
        ]

    def test_get_detector(self):
        assert get_detector(SignalType.PULLBACK) is detect_pullback


class TestBreakout:
    def test_long_on_volume_spike(self):
        ind = IndicatorSnapshot(ema20=100, ema50=99, vwap=100)
        match = detect_breakout(make_bar(105, 1, volume=4000), make_bar(100, 0), ind)

        assert match.direction == Direction.LONG
        assert match.reason_codes == ("EMA_ABOVE", "VWAP_ABOVE", "VOLUME_SPIKE")

    def test_short_on_volume_spike(self):
        ind = IndicatorSnapshot(ema20=100, ema50=101, vwap=100)
        match = detect_breakout(make_bar(95, 1, volume=4000), make_bar(100, 0), ind)

        assert match.direction == Direction.SHORT
        assert match.reason_codes == ("EMA_BELOW", "VWAP_BELOW", "VOLUME_SPIKE")

    def test_no_spike_no_match(self):
        ind = IndicatorSnapshot(ema20=100, ema50=99, vwap=100)
        # avg (2000 + 1000) / 2 * 1.5 = 2250 > 2000
        assert detect_breakout(make_bar(105, 1, volume=2000), make_bar(100, 0), ind) is None


class TestPullback:
    def test_long_when_oversold_near_ema(self):
        ind = IndicatorSnapshot(ema20=100, rsi=25)
        match = detect_pullback(make_bar(101, 1), make_bar(100, 0), ind)

        assert match.direction == Direction.LONG
        assert match.reason_codes == ("EMA_SUPPORT", "RSI_OVERSOLD")

    def test_short_when_overbought_near_ema(self):
        ind = IndicatorSnapshot(ema20=100, rsi=75)
        match = detect_pullback(make_bar(99, 1), make_bar(100, 0), ind)

        assert match.direction == Direction.SHORT
        assert match.reason_codes == ("EMA_RESISTANCE", "RSI_OVERBOUGHT")

    def test_too_far_from_ema(self):
        ind = IndicatorSnapshot(ema20=100, rsi=25)
        assert detect_pullback(make_bar(103, 1), make_bar(100, 0), ind) is None

    def test_missing_ema(self):
        ind = IndicatorSnapshot(ema20=0, rsi=25)
        assert detect_pullback(make_bar(1, 1), make_bar(1, 0), ind) is None


class TestReversal:
    def test_long(self):
        ind = IndicatorSnapshot(macd=1.0, macd_signal=0.5, rsi=35)
        match = detect_reversal(make_bar(101, 1), make_bar(100, 0), ind)

        assert match.direction == Direction.LONG
        assert match.reason_codes == ("MACD_CROSS", "RSI_OVERSOLD")

    def test_short(self):
        ind = IndicatorSnapshot(macd=0.5, macd_signal=1.0, rsi=65)
        match = detect_reversal(make_bar(99, 1), make_bar(100, 0), ind)

        assert match.direction == Direction.SHORT
        assert match.reason_codes == ("MACD_CROSS_DOWN", "RSI_OVERBOUGHT")

    def test_price_must_confirm(self):
        ind = IndicatorSnapshot(macd=1.0, macd_signal=0.5, rsi=35)
        assert detect_reversal(make_bar(99, 1), make_bar(100, 0), ind) is None

    def test_zero_macd_is_unavailable(self):
        ind = IndicatorSnapshot(macd=0.0, macd_signal=-0.5, rsi=35)
        assert detect_reversal(make_bar(101, 1), make_bar(100, 0), ind) is None


class TestContinuation:
    def test_long(self):
        ind = IndicatorSnapshot(ema20=100, ema50=98, vwap=99)
        match = detect_continuation(make_bar(101, 1), make_bar(100, 0), ind)

        assert match.direction == Direction.LONG
        assert match.reason_codes == ("TREND_ALIGNED", "EMA_ALIGNMENT", "VWAP_SUPPORT")

    def test_short(self):
        ind = IndicatorSnapshot(ema20=100, ema50=102, vwap=101)
        match = detect_continuation(make_bar(99, 1), make_bar(100, 0), ind)

        assert match.direction == Direction.SHORT
        assert match.reason_codes[-1] == "VWAP_RESISTANCE"

    def test_emas_not_stacked(self):
        ind = IndicatorSnapshot(ema20=98, ema50=100, vwap=99)
        assert detect_continuation(make_bar(101, 1), make_bar(100, 0), ind) is None


class TestConfluenceFactors:
    def test_weighted_score(self):
        factors = ConfluenceFactors(
            trend_alignment=0.9,
            volume_confirmation=0.8,
            support_resistance=0.7,
            momentum_strength=0.6,
            volatility_appropriate=0.8,
        )
        assert factors.score == pytest.approx(0.765)

    def test_factor_out_of_range(self):
        with pytest.raises(ValueError):
            ConfluenceFactors(
                trend_alignment=1.5,
                volume_confirmation=0.8,
                support_resistance=0.7,
                momentum_strength=0.6,
                volatility_appropriate=0.8,
            )


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class TestSignalGenerator:
    def test_breakout_long_first_match(self):
        """Close above EMA20/EMA50/VWAP with a volume spike -> BREAKOUT LONG."""
        gen = SignalGenerator(RiskParameters())
        signals = gen.generate(flat_then(110.0, 4000.0), balance=100_000)

        assert len(signals) == 1
        signal = signals[0]
        assert signal.signal_type == SignalType.BREAKOUT
        assert signal.direction == Direction.LONG
        assert {"EMA_ABOVE", "VWAP_ABOVE", "VOLUME_SPIKE"} <= set(signal.reason_codes)

    def test_stops_targets_and_size(self):
        gen = SignalGenerator(RiskParameters(max_risk_amount=500))
        signal = gen.first_match(flat_then(110.0, 4000.0), balance=100_000)

        # ATR 2.0 -> SL = 110 - 4, TP = 110 + 6
        assert signal.stop_loss == pytest.approx(106.0)
        assert signal.take_profit == pytest.approx(116.0)
        assert signal.risk_reward_ratio == pytest.approx(1.5)
        # min(floor(500 / 4), floor(95000 / 110))
        assert signal.quantity == 125
        assert signal.max_risk == 500

    def test_breakout_short(self):
        gen = SignalGenerator(RiskParameters())
        signal = gen.first_match(flat_then(90.0, 4000.0), balance=100_000)

        assert signal.signal_type == SignalType.BREAKOUT
        assert signal.direction == Direction.SHORT
        assert signal.stop_loss > signal.price > signal.take_profit

    def test_all_matches_applies_validation(self):
        # Every detector fixes R:R at 1.5, below the 2.0 default
        gen = SignalGenerator(RiskParameters())
        assert gen.generate(
            flat_then(110.0, 4000.0), 100_000, AggregationPolicy.ALL_MATCHES
        ) == []

    def test_all_matches_returns_every_passing_detector(self):
        gen = SignalGenerator(RiskParameters(min_risk_reward=1.5))
        signals = gen.generate(
            flat_then(110.0, 4000.0), 100_000, AggregationPolicy.ALL_MATCHES
        )

        assert [s.signal_type for s in signals] == [
            SignalType.BREAKOUT,
            SignalType.CONTINUATION,
        ]
        for s in signals:
            assert 0.0 <= s.confluence_score <= 1.0
            assert s.reason_codes

    def test_needs_fifty_bars(self):
        gen = SignalGenerator()
        bars = flat_then(110.0, 4000.0, n=48)  # 49 bars
        assert gen.generate(bars, 100_000) == []

    def test_zero_size_discards(self):
        gen = SignalGenerator(RiskParameters())
        assert gen.generate(flat_then(110.0, 4000.0), balance=50) == []

    def test_enriched_flag(self):
        gen = SignalGenerator(RiskParameters())
        signal = gen.first_match(flat_then(110.0, 4000.0), 100_000, {"atr": 1.0})

        assert signal.is_enriched is True
        assert signal.stop_loss == pytest.approx(108.0)

    def test_ids_are_deterministic(self):
        gen = SignalGenerator()
        bars = flat_then(110.0, 4000.0)
        assert gen.first_match(bars, 100_000).id == gen.first_match(bars, 100_000).id
