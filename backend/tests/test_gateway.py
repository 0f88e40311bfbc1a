"""Tests for ThrottledFetchGateway: cache, rolling-window limits, retries, queue."""

import asyncio
import pytest

from app.clients.events import GatewayEventType
from app.clients.gateway import RateLimitState, ThrottledFetchGateway
from app.config import RateLimitSettings
from core.errors import ProviderError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


def make_gateway(clock: FakeClock, **limits: RateLimitSettings) -> ThrottledFetchGateway:
    return ThrottledFetchGateway(limits, clock=clock, sleep=clock.sleep)


class Counter:
    """Zero-argument coroutine function that records its calls."""

    def __init__(self, fail_times: int = 0, label: str = "ok", log: list | None = None):
        self.calls = 0
        self.fail_times = fail_times
        self.label = label
        self.log = log

    async def __call__(self):
        self.calls += 1
        if self.log is not None:
            self.log.append(self.label)
        if self.calls <= self.fail_times:
            raise ValueError(f"failure {self.calls}")
        return self.label


def record_events(gateway: ThrottledFetchGateway) -> list:
    events = []
    gateway.events.subscribe(events.append)
    return events


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class TestCache:
    @pytest.mark.asyncio
    async def test_hit_within_ttl(self):
        clock = FakeClock()
        gateway = make_gateway(clock)
        events = record_events(gateway)
        op = Counter()

        assert await gateway.execute("polygon", op, "bars:SPY", ttl=300) == "ok"
        clock.now += 299
        assert await gateway.execute("polygon", op, "bars:SPY", ttl=300) == "ok"

        assert op.calls == 1
        assert [e.type for e in events] == [
            GatewayEventType.CACHE_MISS,
            GatewayEventType.REQUEST_EXECUTED,
            GatewayEventType.CACHE_HIT,
        ]
        assert events[-1].key == "bars:SPY"
        assert gateway.get_cache_stats() == {
            "size": 1,
            "hits": 1,
            "misses": 1,
            "hit_rate": 0.5,
        }

    @pytest.mark.asyncio
    async def test_expires_at_ttl(self):
        clock = FakeClock()
        gateway = make_gateway(clock)
        op = Counter()

        await gateway.execute("polygon", op, "k", ttl=300)
        clock.now += 300
        await gateway.execute("polygon", op, "k", ttl=300)

        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_keys_scoped_by_provider(self):
        gateway = make_gateway(FakeClock())
        op = Counter()

        await gateway.execute("polygon", op, "k")
        await gateway.execute("twelvedata", op, "k")

        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_no_key_no_cache(self):
        gateway = make_gateway(FakeClock())
        events = record_events(gateway)
        op = Counter()

        await gateway.execute("polygon", op)
        await gateway.execute("polygon", op)

        assert op.calls == 2
        assert [e.type for e in events] == [GatewayEventType.REQUEST_EXECUTED] * 2
        assert gateway.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        gateway = make_gateway(FakeClock())
        op = Counter()

        await gateway.execute("polygon", op, "k")
        gateway.clear_cache()
        await gateway.execute("polygon", op, "k")

        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_failures_not_cached(self):
        gateway = make_gateway(FakeClock())
        op = Counter(fail_times=1)

        with pytest.raises(ValueError):
            await gateway.execute("polygon", op, "k", retries=0)
        assert await gateway.execute("polygon", op, "k", retries=0) == "ok"


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------

class TestRetries:
    @pytest.mark.asyncio
    async def test_backoff_then_success(self):
        clock = FakeClock()
        gateway = make_gateway(clock)
        events = record_events(gateway)
        op = Counter(fail_times=2)

        assert await gateway.execute("polygon", op, retries=3) == "ok"

        assert op.calls == 3
        assert clock.sleeps == [0.5, 1.0]
        retries = [e for e in events if e.type == GatewayEventType.RETRY]
        assert [(e.attempt, e.delay) for e in retries] == [(1, 0.5), (2, 1.0)]

    @pytest.mark.asyncio
    async def test_exhausted_raises_last_error(self):
        clock = FakeClock()
        gateway = make_gateway(clock)
        op = Counter(fail_times=10)

        with pytest.raises(ValueError, match="failure 3"):
            await gateway.execute("polygon", op, retries=2)

        assert op.calls == 3
        assert clock.sleeps == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self):
        gateway = make_gateway(FakeClock())

        async def slow():
            await asyncio.sleep(10)

        with pytest.raises(asyncio.TimeoutError):
            await gateway.execute("polygon", slow, retries=0, timeout=0.01)


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

class TestRateLimitState:
    def test_minute_window_is_half_open(self):
        state = RateLimitState(requests_per_minute=2)
        state.record(0.0)
        state.record(10.0)

        assert not state.can_make_request(59.9)
        assert state.can_make_request(60.0)

    def test_hour_cap(self):
        state = RateLimitState(requests_per_minute=5, requests_per_hour=6)
        for _ in range(5):
            state.record(0.0)
        assert not state.can_make_request(0.0)

        state.record(60.0)
        assert not state.can_make_request(120.0)
        assert state.can_make_request(3600.0)

    def test_zero_disables_window(self):
        state = RateLimitState(requests_per_minute=0, requests_per_day=1)
        state.record(0.0)
        assert not state.can_make_request(3600.0)
        assert state.can_make_request(86400.0)

    def test_current_requests_and_reset(self):
        state = RateLimitState(requests_per_minute=5)
        state.record(100.0)
        state.record(130.0)

        assert state.current_requests(140.0) == 2
        assert state.reset_time(140.0) == 160.0
        assert state.current_requests(165.0) == 1


class TestThrottling:
    @pytest.mark.asyncio
    async def test_queued_calls_run_fifo_when_window_frees(self):
        clock = FakeClock()
        gateway = make_gateway(clock, test=RateLimitSettings(requests_per_minute=1))
        events = record_events(gateway)
        log: list[str] = []
        start = clock.now

        results = await asyncio.gather(
            gateway.execute("test", Counter(label="a", log=log)),
            gateway.execute("test", Counter(label="b", log=log)),
            gateway.execute("test", Counter(label="c", log=log)),
        )

        assert results == ["a", "b", "c"]
        assert log == ["a", "b", "c"]
        assert clock.now - start == pytest.approx(120.0)
        throttled = [e for e in events if e.type == GatewayEventType.THROTTLED]
        assert [e.queue_size for e in throttled] == [1, 2]
        assert gateway.get_queue_size("test") == 0
        await gateway.close()

    @pytest.mark.asyncio
    async def test_window_never_exceeded(self):
        clock = FakeClock()
        gateway = make_gateway(clock, test=RateLimitSettings(requests_per_minute=2))
        started: list[float] = []

        async def op():
            started.append(clock.now)
            return clock.now

        await asyncio.gather(*(gateway.execute("test", op) for _ in range(5)))

        for t in started:
            in_window = [s for s in started if t - 60 < s <= t]
            assert len(in_window) <= 2
        await gateway.close()

    @pytest.mark.asyncio
    async def test_unknown_provider_unlimited(self):
        gateway = make_gateway(FakeClock(), test=RateLimitSettings(requests_per_minute=1))
        op = Counter()

        for _ in range(20):
            await gateway.execute("elsewhere", op)

        assert op.calls == 20
        assert gateway.get_rate_limit_info("elsewhere") is None

    @pytest.mark.asyncio
    async def test_queued_failure_reaches_caller(self):
        clock = FakeClock()
        gateway = make_gateway(clock, test=RateLimitSettings(requests_per_minute=1))

        await gateway.execute("test", Counter())
        with pytest.raises(ValueError):
            await gateway.execute("test", Counter(fail_times=5), retries=0)
        await gateway.close()

    @pytest.mark.asyncio
    async def test_clear_queue_fails_pending(self):
        clock = FakeClock()
        gateway = make_gateway(clock, test=RateLimitSettings(requests_per_minute=1))
        await gateway.execute("test", Counter())

        pending = asyncio.create_task(gateway.execute("test", Counter()))
        await asyncio.sleep(0)
        assert gateway.get_queue_size("test") == 1

        gateway.clear_queue("test")
        with pytest.raises(ProviderError, match="queue cleared"):
            await pending
        await gateway.close()

    @pytest.mark.asyncio
    async def test_close_fails_call_being_drained(self):
        clock = FakeClock()
        gateway = make_gateway(clock, test=RateLimitSettings(requests_per_minute=1))
        await gateway.execute("test", Counter())

        started = asyncio.Event()

        async def stuck():
            started.set()
            await asyncio.Event().wait()

        pending = asyncio.create_task(gateway.execute("test", stuck))
        await asyncio.wait_for(started.wait(), 1.0)
        assert gateway.get_queue_size("test") == 0

        await gateway.close()
        with pytest.raises(ProviderError, match="gateway closed"):
            await asyncio.wait_for(pending, 1.0)

    @pytest.mark.asyncio
    async def test_new_call_waits_behind_queued_calls(self):
        clock = FakeClock()
        gateway = make_gateway(clock, test=RateLimitSettings(requests_per_minute=1))
        log: list[str] = []
        await gateway.execute("test", Counter(label="a", log=log))

        queued = asyncio.create_task(gateway.execute("test", Counter(label="b", log=log)))
        await asyncio.sleep(0)
        assert gateway.get_queue_size("test") == 1

        # Window frees before the drain task gets to run
        clock.now += 60
        assert await gateway.execute("test", Counter(label="c", log=log)) == "c"
        assert await queued == "b"

        assert log == ["a", "b", "c"]
        await gateway.close()

    @pytest.mark.asyncio
    async def test_rate_limit_info_and_update(self):
        clock = FakeClock()
        gateway = make_gateway(clock, test=RateLimitSettings(requests_per_minute=5))
        await gateway.execute("test", Counter())
        clock.now += 10
        await gateway.execute("test", Counter())

        info = gateway.get_rate_limit_info("test")
        assert info["requests_per_minute"] == 5
        assert info["current_requests"] == 2
        assert info["reset_time"] == 1060.0

        gateway.update_rate_limit("test", requests_per_minute=2)
        assert not gateway._can_make_request("test")
        assert gateway.get_rate_limit_info("test")["current_requests"] == 2

    def test_default_limits(self):
        gateway = ThrottledFetchGateway()
        assert gateway.get_rate_limit_info("polygon")["requests_per_minute"] == 5
        assert gateway.get_rate_limit_info("twelvedata")["requests_per_minute"] == 8
        assert gateway.get_rate_limit_info("tradier")["requests_per_minute"] == 120

    @pytest.mark.asyncio
    async def test_raising_listener_does_not_break_calls(self):
        gateway = make_gateway(FakeClock())

        def bad_listener(event):
            raise RuntimeError("listener bug")

        gateway.events.subscribe(bad_listener)
        assert await gateway.execute("polygon", Counter(), "k") == "ok"
