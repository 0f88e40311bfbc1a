"""Detector registry.

Detectors register themselves in priority order; the generator walks the
registry in that order.

Usage:
    @register_detector(SignalType.BREAKOUT)
    def detect_breakout(current, previous, indicators):
        ...

    detectors = list_detectors()
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from core.models.bar import Bar
from core.models.signal import IndicatorSnapshot, SignalType

logger = logging.getLogger(__name__)

# Detector signature: (current bar, previous bar, indicators) -> match or None
Detector = Callable[[Bar, Bar, IndicatorSnapshot], Optional["DetectorMatch"]]  # noqa: F821

# Global registry: signal_type -> detector, insertion order is priority order
_REGISTRY: dict[SignalType, Detector] = {}


def register_detector(signal_type: SignalType):
    """Decorator to register a detector for a signal type.

    Args:
        signal_type: Pattern the detector recognises.

    Returns:
        Decorator that registers the function and returns it unchanged.

    Raises:
        ValueError: If a detector for the same type is already registered.
    """

    def decorator(func: Detector) -> Detector:
        if signal_type in _REGISTRY:
            raise ValueError(
                f"Detector for '{signal_type.value}' is already registered by "
                f"{_REGISTRY[signal_type].__name__}"
            )
        _REGISTRY[signal_type] = func
        logger.debug("Registered detector: %s -> %s", signal_type.value, func.__name__)
        return func

    return decorator


def get_detector(signal_type: SignalType) -> Detector:
    """Get the detector registered for a signal type.

    Raises:
        KeyError: If no detector is registered for the type.
    """
    func = _REGISTRY.get(signal_type)
    if func is None:
        available = ", ".join(t.value for t in _REGISTRY) or "(none)"
        raise KeyError(
            f"Unknown detector '{signal_type.value}'. Available: {available}"
        )
    return func


def list_detectors() -> list[tuple[SignalType, Detector]]:
    """Return registered detectors in priority order."""
    return list(_REGISTRY.items())
