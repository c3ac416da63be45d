"""Data loading and preparation utilities."""

from payout_core.forecasting.data.loaders import load_events, load_payouts
from payout_core.forecasting.data.preparation import (
    build_daily_series,
    confirmed_payout_series,
    daily_order_series,
    payouts_to_frame,
)

__all__ = [
    "build_daily_series",
    "confirmed_payout_series",
    "daily_order_series",
    "load_events",
    "load_payouts",
    "payouts_to_frame",
]
