"""Throttled fetch gateway shared by every outbound provider call.

Per call, in order:
1. Cache lookup by (provider, cache_key) honouring the entry's TTL
2. Rolling-window rate limit check; over the cap, or while earlier calls
   are still waiting, the call is queued FIFO per provider and drained as
   capacity frees up
3. Execution with exponential-backoff retries (base 0.5s, doubling)

Every step publishes a GatewayEvent on ``gateway.events``. The gateway
never reacts to its own events.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from app.clients.events import EventBus, GatewayEvent, GatewayEventType
from app.config import RateLimitSettings
from core.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MINUTE = 60.0
HOUR = 3600.0
DAY = 86400.0

DEFAULT_TTL = 300.0  # seconds
DEFAULT_RETRIES = 3
BASE_RETRY_DELAY = 0.5  # seconds, doubles per attempt
DRAIN_INTERVAL = 1.0  # seconds between drain cycles while throttled

DEFAULT_RATE_LIMITS: dict[str, RateLimitSettings] = {
    "polygon": RateLimitSettings(
        requests_per_minute=5, requests_per_hour=300, requests_per_day=5000
    ),
    "twelvedata": RateLimitSettings(
        requests_per_minute=8, requests_per_hour=800, requests_per_day=8000
    ),
    "tradier": RateLimitSettings(
        requests_per_minute=120, requests_per_hour=1000, requests_per_day=10000
    ),
}


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp >= self.ttl


@dataclass
class RateLimitState:
    """Request timestamps for one provider, checked against rolling windows.

    A cap of 0 disables that window.
    """

    requests_per_minute: int
    requests_per_hour: int = 0
    requests_per_day: int = 0
    timestamps: deque[float] = field(default_factory=deque)

    def _prune(self, now: float) -> None:
        horizon = DAY if self.requests_per_day else HOUR if self.requests_per_hour else MINUTE
        while self.timestamps and self.timestamps[0] <= now - horizon:
            self.timestamps.popleft()

    def count_since(self, cutoff: float) -> int:
        return sum(1 for ts in self.timestamps if ts > cutoff)

    def can_make_request(self, now: float) -> bool:
        self._prune(now)
        for cap, window in (
            (self.requests_per_minute, MINUTE),
            (self.requests_per_hour, HOUR),
            (self.requests_per_day, DAY),
        ):
            if cap and self.count_since(now - window) >= cap:
                return False
        return True

    def record(self, now: float) -> None:
        self.timestamps.append(now)

    def current_requests(self, now: float) -> int:
        """Requests inside the current rolling minute."""
        self._prune(now)
        return self.count_since(now - MINUTE)

    def reset_time(self, now: float) -> float:
        """Clock time at which the oldest request leaves the minute window."""
        recent = [ts for ts in self.timestamps if ts > now - MINUTE]
        return recent[0] + MINUTE if recent else now


@dataclass
class _QueuedCall:
    operation: Callable[[], Awaitable[Any]]
    cache_key: str | None
    ttl: float
    retries: int
    timeout: float | None
    future: asyncio.Future


class ThrottledFetchGateway:
    """Cache + rate limiter + retry wrapper for provider calls.

    One instance owns its cache, limiter state and queues; share the
    instance between clients that hit the same providers.
    """

    def __init__(
        self,
        rate_limits: dict[str, RateLimitSettings] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        base_delay: float = BASE_RETRY_DELAY,
        drain_interval: float = DRAIN_INTERVAL,
    ):
        self._clock = clock
        self._sleep = sleep
        self.base_delay = base_delay
        self.drain_interval = drain_interval

        self.events: EventBus[GatewayEvent] = EventBus()

        self._cache: dict[tuple[str, str], CacheEntry] = {}
        self._hits = 0
        self._misses = 0

        self._limits: dict[str, RateLimitState] = {}
        for provider, limit in (rate_limits or DEFAULT_RATE_LIMITS).items():
            self.update_rate_limit(provider, **limit.model_dump())

        self._queues: dict[str, deque[_QueuedCall]] = {}
        self._drain_tasks: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        provider: str,
        operation: Callable[[], Awaitable[T]],
        cache_key: str | None = None,
        ttl: float = DEFAULT_TTL,
        retries: int = DEFAULT_RETRIES,
        timeout: float | None = None,
    ) -> T:
        """Run ``operation`` for ``provider`` through cache, limiter and retries.

        Args:
            provider: Provider name the rate limit is keyed on
            operation: Zero-argument coroutine function doing the actual call
            cache_key: Cache key; None disables caching for this call
            ttl: Cache lifetime in seconds
            retries: Retries after the first failed attempt
            timeout: Per-attempt timeout in seconds; None waits forever

        Returns:
            The operation's result, possibly from cache

        Raises:
            The last exception once the retry budget is exhausted, or
            ProviderError if the call was dropped from the queue
        """
        entry = self._cached(provider, cache_key)
        if entry is not None:
            return entry.data

        # Calls already waiting keep their place ahead of new ones
        if self._queues.get(provider) or not self._can_make_request(provider):
            return await self._enqueue(provider, operation, cache_key, ttl, retries, timeout)

        return await self._run(provider, operation, cache_key, ttl, retries, timeout)

    def _cached(self, provider: str, cache_key: str | None) -> CacheEntry | None:
        """Return a live cache entry, dropping it if expired."""
        if cache_key is None:
            return None
        entry = self._cache.get((provider, cache_key))
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._cache[(provider, cache_key)]
            return None
        self._hits += 1
        self._emit(GatewayEventType.CACHE_HIT, provider, key=cache_key)
        return entry

    async def _run(
        self,
        provider: str,
        operation: Callable[[], Awaitable[T]],
        cache_key: str | None,
        ttl: float,
        retries: int,
        timeout: float | None,
    ) -> T:
        state = self._limits.get(provider)
        if state is not None:
            state.record(self._clock())

        if cache_key is not None:
            self._misses += 1
            self._emit(GatewayEventType.CACHE_MISS, provider, key=cache_key)

        result = await self._execute_with_retry(provider, operation, retries, timeout)

        if cache_key is not None:
            self._cache[(provider, cache_key)] = CacheEntry(result, self._clock(), ttl)
        self._emit(GatewayEventType.REQUEST_EXECUTED, provider, key=cache_key)
        return result

    async def _execute_with_retry(
        self,
        provider: str,
        operation: Callable[[], Awaitable[T]],
        retries: int,
        timeout: float | None,
    ) -> T:
        attempt = 0
        while True:
            try:
                if timeout is not None:
                    return await asyncio.wait_for(operation(), timeout)
                return await operation()
            except Exception as e:
                attempt += 1
                if attempt > retries:
                    logger.warning(f"{provider} request failed after {attempt} attempts: {e}")
                    raise
                delay = self.base_delay * 2 ** (attempt - 1)
                logger.debug(f"{provider} attempt {attempt} failed ({e}), retrying in {delay}s")
                self._emit(GatewayEventType.RETRY, provider, attempt=attempt, delay=delay)
                await self._sleep(delay)

    # ------------------------------------------------------------------
    # Rate limiting and queueing
    # ------------------------------------------------------------------

    def _can_make_request(self, provider: str) -> bool:
        state = self._limits.get(provider)
        if state is None:
            return True
        return state.can_make_request(self._clock())

    async def _enqueue(
        self,
        provider: str,
        operation: Callable[[], Awaitable[T]],
        cache_key: str | None,
        ttl: float,
        retries: int,
        timeout: float | None,
    ) -> T:
        queue = self._queues.setdefault(provider, deque())
        self._emit(GatewayEventType.THROTTLED, provider, queue_size=len(queue) + 1)

        future = asyncio.get_running_loop().create_future()
        queue.append(_QueuedCall(operation, cache_key, ttl, retries, timeout, future))
        self._schedule_drain(provider)
        return await future

    def _schedule_drain(self, provider: str) -> None:
        task = self._drain_tasks.get(provider)
        if task is not None and not task.done():
            return
        self._drain_tasks[provider] = asyncio.create_task(self._drain(provider))

    async def _drain(self, provider: str) -> None:
        """Pop queued calls while capacity remains; re-check every drain_interval."""
        queue = self._queues.get(provider)
        while queue:
            while queue and self._can_make_request(provider):
                call = queue.popleft()
                if call.future.done():
                    continue
                try:
                    entry = self._cached(provider, call.cache_key)
                    if entry is not None:
                        result = entry.data
                    else:
                        result = await self._run(
                            provider,
                            call.operation,
                            call.cache_key,
                            call.ttl,
                            call.retries,
                            call.timeout,
                        )
                except asyncio.CancelledError:
                    if not call.future.done():
                        call.future.set_exception(ProviderError(provider, "gateway closed"))
                    raise
                except Exception as e:
                    logger.warning(f"Queued operation failed for {provider}: {e}")
                    if not call.future.done():
                        call.future.set_exception(e)
                else:
                    if not call.future.done():
                        call.future.set_result(result)
            if queue:
                await self._sleep(self.drain_interval)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, event_type: GatewayEventType, provider: str, **fields: Any) -> None:
        self.events.publish(GatewayEvent(event_type, provider, **fields))

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> dict[str, float]:
        lookups = self._hits + self._misses
        return {
            "size": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }

    def get_rate_limit_info(self, provider: str) -> dict[str, Any] | None:
        state = self._limits.get(provider)
        if state is None:
            return None
        now = self._clock()
        return {
            "requests_per_minute": state.requests_per_minute,
            "requests_per_hour": state.requests_per_hour,
            "requests_per_day": state.requests_per_day,
            "current_requests": state.current_requests(now),
            "reset_time": state.reset_time(now),
        }

    def update_rate_limit(
        self,
        provider: str,
        requests_per_minute: int | None = None,
        requests_per_hour: int | None = None,
        requests_per_day: int | None = None,
    ) -> None:
        """Create or adjust a provider's caps. Request history is kept."""
        state = self._limits.get(provider)
        if state is None:
            state = RateLimitState(requests_per_minute=requests_per_minute or 0)
            self._limits[provider] = state
        elif requests_per_minute is not None:
            state.requests_per_minute = requests_per_minute
        if requests_per_hour is not None:
            state.requests_per_hour = requests_per_hour
        if requests_per_day is not None:
            state.requests_per_day = requests_per_day

    def get_queue_size(self, provider: str) -> int:
        return len(self._queues.get(provider, ()))

    def clear_queue(self, provider: str | None = None) -> None:
        """Drop queued calls; their callers receive ProviderError."""
        providers = [provider] if provider is not None else list(self._queues)
        for name in providers:
            queue = self._queues.get(name)
            while queue:
                call = queue.popleft()
                if not call.future.done():
                    call.future.set_exception(ProviderError(name, "request queue cleared"))

    async def close(self) -> None:
        """Fail pending calls and cancel drain tasks."""
        self.clear_queue()
        tasks = [t for t in self._drain_tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._drain_tasks.clear()
