"""Financial event normalization.

Example:
    >>> from payout_core.events import normalize_events
    >>> result = normalize_events(raw_events, return_rate=0.02, chargeback_rate=0.005)
    >>> result.skipped  # malformed events dropped
    0
"""

from payout_core.events.normalizer import (
    NormalizationResult,
    classify_event_type,
    normalize_event,
    normalize_events,
    summarize_events,
)
from payout_core.events.types import EventType, FinancialEvent

__all__ = [
    "EventType",
    "FinancialEvent",
    "NormalizationResult",
    "classify_event_type",
    "normalize_event",
    "normalize_events",
    "summarize_events",
]
