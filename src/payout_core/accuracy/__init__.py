"""Forecast accuracy tracking against realized payouts."""

from payout_core.accuracy.tracker import (
    AccuracyLogEntry,
    AccuracyReport,
    AccuracyTracker,
    compute_difference_percentage,
    find_matching_forecast,
)

__all__ = [
    "AccuracyLogEntry",
    "AccuracyReport",
    "AccuracyTracker",
    "compute_difference_percentage",
    "find_matching_forecast",
]
