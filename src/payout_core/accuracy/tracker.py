"""Append-only accuracy log comparing forecasts with confirmed payouts.

When a payout is confirmed, the most recent forecasted or estimated record
for the same account and date is looked up and the relative error is logged:

    difference_percentage = (actual - forecast) / actual * 100

A zero actual payout makes the percentage undefined, so no entry is logged.
Aggregate accuracy over the trailing entries is

    clamp(100 - mean(|difference_percentage|), 0, 100)

Accuracy is advisory: nothing here ever blocks forecasting.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

import pandas as pd

from payout_core.forecasting.config import ACCURACY_TRAILING_ENTRIES
from payout_core.forecasting.types import PayoutRecord, PayoutStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccuracyLogEntry:
    """One forecast-versus-actual comparison.

    Attributes:
        forecast_id: Id of the forecast record that was compared.
        account_id: Owning account.
        payout_date: Date of the confirmed payout.
        actual_amount: Confirmed payout amount.
        forecast_amount: Forecast amount shown to the user.
        difference_percentage: (actual - forecast) / actual * 100.
        logged_at: When the comparison was logged.
        modeling_method: Model that produced the forecast, if known.
    """

    forecast_id: str
    account_id: str
    payout_date: date
    actual_amount: float
    forecast_amount: float
    difference_percentage: float
    logged_at: datetime
    modeling_method: Optional[str] = None


@dataclass(frozen=True)
class AccuracyReport:
    """Summary of trailing accuracy for an account.

    Attributes:
        accuracy: Aggregate accuracy in percent, or None with no entries.
        bias: Mean of (forecast - actual); positive means over-forecasting.
        entry_count: Number of entries summarized.
        by_method: Aggregate accuracy per modeling method.
    """

    accuracy: Optional[float]
    bias: Optional[float]
    entry_count: int
    by_method: dict[str, float] = field(default_factory=dict)


def compute_difference_percentage(actual: float, forecast: float) -> Optional[float]:
    """Relative forecast error in percent, or None when actual is zero.

    Examples:
        >>> compute_difference_percentage(1000.0, 900.0)
        10.0
        >>> compute_difference_percentage(0.0, 50.0) is None
        True
    """
    if actual == 0:
        return None
    return (actual - forecast) / actual * 100.0


def _accuracy_from_differences(differences: pd.Series) -> Optional[float]:
    if differences.empty:
        return None
    accuracy = 100.0 - float(differences.abs().mean())
    return min(100.0, max(0.0, accuracy))


def find_matching_forecast(
    actual: PayoutRecord, candidates: Iterable[PayoutRecord]
) -> Optional[PayoutRecord]:
    """Most recent forecasted or estimated record for the actual's account and date."""
    matches = [
        c
        for c in candidates
        if c.account_id == actual.account_id
        and c.payout_date == actual.payout_date
        and c.status in (PayoutStatus.FORECASTED, PayoutStatus.ESTIMATED)
    ]
    if not matches:
        return None
    return max(matches, key=lambda c: (c.generated_at or datetime.min, c.status.rank))


class AccuracyTracker:
    """Append-only store of AccuracyLogEntry values.

    Entries are never updated or removed. The tracker is safe to share
    between threads.
    """

    def __init__(self, entries: Iterable[AccuracyLogEntry] = ()) -> None:
        self._entries: list[AccuracyLogEntry] = list(entries)
        self._lock = threading.Lock()

    @property
    def entries(self) -> tuple[AccuracyLogEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def append(self, entry: AccuracyLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def record_confirmation(
        self,
        actual: PayoutRecord,
        candidates: Iterable[PayoutRecord],
        logged_at: Optional[datetime] = None,
    ) -> Optional[AccuracyLogEntry]:
        """Log the accuracy of the forecast matching a confirmed payout.

        Args:
            actual: The confirmed payout.
            candidates: Records to search for the matching forecast
                (typically the account's stored records before confirmation).
            logged_at: Timestamp for the entry (default: now).

        Returns:
            The appended entry, or None when there was no matching forecast
            or the actual amount is zero.
        """
        forecast = find_matching_forecast(actual, candidates)
        if forecast is None:
            logger.debug(
                f"No forecast to compare for {actual.account_id} on {actual.payout_date}"
            )
            return None

        difference = compute_difference_percentage(actual.total_amount, forecast.total_amount)
        if difference is None:
            logger.warning(
                f"Zero actual payout for {actual.account_id} on {actual.payout_date}; "
                f"accuracy not logged"
            )
            return None

        entry = AccuracyLogEntry(
            forecast_id=forecast.id,
            account_id=actual.account_id,
            payout_date=actual.payout_date,
            actual_amount=actual.total_amount,
            forecast_amount=forecast.total_amount,
            difference_percentage=difference,
            logged_at=logged_at or datetime.now(),
            modeling_method=forecast.modeling_method,
        )
        self.append(entry)
        logger.info(
            f"Accuracy for {actual.account_id} on {actual.payout_date}: "
            f"{difference:+.2f}% ({forecast.modeling_method})"
        )
        return entry

    def _trailing_frame(self, account_id: Optional[str], trailing: int) -> pd.DataFrame:
        entries = [e for e in self.entries if account_id is None or e.account_id == account_id]
        entries = entries[-trailing:] if trailing > 0 else []
        return pd.DataFrame(
            [
                {
                    "difference_percentage": e.difference_percentage,
                    "error": e.forecast_amount - e.actual_amount,
                    "modeling_method": e.modeling_method or "unknown",
                }
                for e in entries
            ],
            columns=["difference_percentage", "error", "modeling_method"],
        )

    def aggregate_accuracy(
        self,
        account_id: Optional[str] = None,
        trailing: int = ACCURACY_TRAILING_ENTRIES,
    ) -> Optional[float]:
        """Aggregate accuracy over the trailing entries, clamped to [0, 100].

        Returns:
            Accuracy in percent, or None when there are no entries.
        """
        df = self._trailing_frame(account_id, trailing)
        return _accuracy_from_differences(df["difference_percentage"])

    def accuracy_report(
        self,
        account_id: Optional[str] = None,
        trailing: int = ACCURACY_TRAILING_ENTRIES,
    ) -> AccuracyReport:
        """Aggregate accuracy, bias and per-method breakdown."""
        df = self._trailing_frame(account_id, trailing)
        if df.empty:
            return AccuracyReport(accuracy=None, bias=None, entry_count=0)

        by_method = {
            str(method): _accuracy_from_differences(group["difference_percentage"])
            for method, group in df.groupby("modeling_method")
        }
        return AccuracyReport(
            accuracy=_accuracy_from_differences(df["difference_percentage"]),
            bias=float(df["error"].mean()),
            entry_count=len(df),
            by_method=by_method,
        )
