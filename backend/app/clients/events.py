"""Typed publish/subscribe for gateway telemetry."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GatewayEventType(str, Enum):
    CACHE_HIT = "CACHE_HIT"
    CACHE_MISS = "CACHE_MISS"
    THROTTLED = "THROTTLED"
    RETRY = "RETRY"
    REQUEST_EXECUTED = "REQUEST_EXECUTED"


@dataclass(frozen=True, slots=True)
class GatewayEvent:
    """One gateway observation. Optional fields depend on the event type."""

    type: GatewayEventType
    provider: str
    key: str | None = None
    queue_size: int | None = None  # THROTTLED
    attempt: int | None = None  # RETRY
    delay: float | None = None  # RETRY, seconds


class EventBus(Generic[T]):
    """Synchronous event bus.

    Listeners are called in registration order. A listener that raises is
    logged and skipped; the remaining listeners still receive the event.
    """

    def __init__(self):
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener error: {e}")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
