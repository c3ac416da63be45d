"""Data preparation utilities for payout forecasting.

This module turns payout records and financial events into daily time series
suitable for the forecasting models.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

import pandas as pd

from payout_core.events.types import EventType, FinancialEvent
from payout_core.forecasting.types import PayoutRecord, PayoutStatus


def payouts_to_frame(records: Iterable[PayoutRecord]) -> pd.DataFrame:
    """Convert payout records to a DataFrame sorted by payout date.

    Returns:
        DataFrame with columns: payout_date (datetime64), total_amount, status
    """
    rows = [
        {
            "payout_date": record.payout_date,
            "total_amount": float(record.total_amount),
            "status": record.status.value,
        }
        for record in records
    ]
    if not rows:
        return pd.DataFrame(columns=["payout_date", "total_amount", "status"])

    df = pd.DataFrame(rows)
    df["payout_date"] = pd.to_datetime(df["payout_date"])
    return df.sort_values("payout_date", kind="mergesort").reset_index(drop=True)


def confirmed_payout_series(records: Iterable[PayoutRecord]) -> pd.Series:
    """Confirmed payout totals per payout date, oldest first.

    Payouts landing on the same date are summed. Days without a payout are
    not filled: each entry is one observed payout date.
    """
    df = payouts_to_frame(records)
    df = df[df["status"] == PayoutStatus.CONFIRMED.value]
    if df.empty:
        return pd.Series(dtype=float, index=pd.DatetimeIndex([], name="payout_date"))
    return df.groupby("payout_date")["total_amount"].sum().sort_index()


def build_daily_series(
    df: pd.DataFrame,
    date_column: str,
    value_column: str,
    start: date | None = None,
    end: date | None = None,
) -> pd.Series:
    """Build a daily time series from a date/value DataFrame.

    Missing days are treated as zero-activity days.

    Args:
        df: DataFrame with a date column and a numeric value column
        date_column: Name of the date column
        value_column: Name of the value column
        start: First day of the series (default: earliest date in df)
        end: Last day of the series, inclusive (default: latest date in df)

    Returns:
        Daily Series indexed by date, with missing days filled with 0.0
    """
    data = df[[date_column, value_column]].copy()
    data[date_column] = pd.to_datetime(data[date_column]).dt.normalize()
    daily = data.groupby(date_column)[value_column].sum()

    if start is None and daily.empty:
        return pd.Series(dtype=float)

    range_start = pd.Timestamp(start) if start is not None else daily.index.min()
    range_end = pd.Timestamp(end) if end is not None else daily.index.max()
    if range_end < range_start:
        return pd.Series(dtype=float)

    date_range = pd.date_range(start=range_start, end=range_end, freq="D")
    daily = daily.reindex(date_range, fill_value=0.0).astype(float)

    return daily.fillna(0.0)


def daily_order_series(
    events: Iterable[FinancialEvent],
    as_of: date,
    lookback_days: int,
) -> pd.Series:
    """Daily order net amounts over the trailing lookback window.

    The window covers [as_of - lookback_days, as_of); the evaluation day
    itself is excluded because it is still in progress.
    """
    rows = [
        {"event_date": event.event_date, "net_amount": event.net_amount}
        for event in events
        if event.type is EventType.ORDER
    ]
    df = pd.DataFrame(rows, columns=["event_date", "net_amount"])
    start = as_of - timedelta(days=lookback_days)
    end = as_of - timedelta(days=1)
    if not df.empty:
        dates = pd.to_datetime(df["event_date"])
        df = df[(dates >= pd.Timestamp(start)) & (dates <= pd.Timestamp(end))]
    return build_daily_series(df, "event_date", "net_amount", start=start, end=end)
