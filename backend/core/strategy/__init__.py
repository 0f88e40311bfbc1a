"""Signal detection.

Public API:
- SignalGenerator / AggregationPolicy: run detectors over a bar window
- DetectorMatch: raw detector hit
- register_detector / list_detectors / get_detector: detector registry
- Capability protocols for external collaborators

Importing this package registers the built-in detectors.
"""

from core.strategy.protocol import (
    ExecutionVenue,
    HistoricalBarSource,
    IndicatorSource,
    LiveQuoteSource,
    SignalLedger,
)
from core.strategy.registry import (
    register_detector,
    get_detector,
    list_detectors,
)
from core.strategy.detectors import DetectorMatch
from core.strategy.generator import AggregationPolicy, SignalGenerator, build_signal

__all__ = [
    "ExecutionVenue",
    "HistoricalBarSource",
    "IndicatorSource",
    "LiveQuoteSource",
    "SignalLedger",
    "register_detector",
    "get_detector",
    "list_detectors",
    "DetectorMatch",
    "AggregationPolicy",
    "SignalGenerator",
    "build_signal",
]
