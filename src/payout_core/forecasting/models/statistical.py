"""Statistical daily payout model.

For accounts paid on a near-daily cadence this model derives three numbers
from confirmed payout history:

- base amount: mean of the last N confirmed payouts (at least 3 required),
- growth trend: (sum of last 30 days - sum of previous 30 days) / previous
  30 days, treated as 0% when the previous window is empty,
- daily variation: sample standard deviation of all confirmed payouts times
  a confidence factor, exposed as an uncertainty band.

The point forecast is ``base * (1 + growth)``; the safety margin is applied
downstream as the last pipeline step. The model has no randomness.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import numpy as np
import pandas as pd

from payout_core.exceptions import InsufficientDataError
from payout_core.forecasting.config import (
    DEFAULT_CONFIDENCE_FACTOR,
    GROWTH_WINDOW_DAYS,
    MIN_CONFIRMED_PAYOUTS,
    RECENT_PAYOUT_WINDOW,
)
from payout_core.forecasting.data.preparation import confirmed_payout_series
from payout_core.forecasting.models.base import ForecastModel
from payout_core.forecasting.safety import AdjustedAmount, SafetyMargin, apply_safety_margin
from payout_core.forecasting.types import ModelDebugInfo, PayoutRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatisticalFit:
    """Parameters fitted from confirmed payout history.

    Attributes:
        base_amount: Mean of the most recent confirmed payouts.
        growth_trend: Relative change between the last two 30-day windows.
        daily_variation: Standard deviation times the confidence factor.
        payout_count: Number of confirmed payouts used.
        as_of: Evaluation date the growth windows are anchored to.
    """

    base_amount: float
    growth_trend: float
    daily_variation: float
    payout_count: int
    as_of: date

    @property
    def raw_forecast(self) -> float:
        """Point forecast before the safety margin."""
        return self.base_amount * (1.0 + self.growth_trend)

    def band(self, point: float) -> tuple[float, float]:
        """Uncertainty band around a point forecast."""
        return point - self.daily_variation, point + self.daily_variation


def growth_trend(series: pd.Series, as_of: date, window_days: int = GROWTH_WINDOW_DAYS) -> float:
    """Relative growth between the last window and the one before it.

    The last window covers (as_of - window_days, as_of] and the previous one
    the window_days before that. Returns 0.0 when the previous window sums
    to zero.
    """
    if series.empty:
        return 0.0
    as_of_ts = pd.Timestamp(as_of)
    last_start = as_of_ts - pd.Timedelta(days=window_days)
    prev_start = last_start - pd.Timedelta(days=window_days)

    last_sum = float(series[(series.index > last_start) & (series.index <= as_of_ts)].sum())
    prev_sum = float(series[(series.index > prev_start) & (series.index <= last_start)].sum())

    if prev_sum == 0:
        return 0.0
    return (last_sum - prev_sum) / prev_sum


def final_forecast(base_amount: float, trend: float, margin: SafetyMargin) -> AdjustedAmount:
    """``base * (1 + trend) * (1 - margin)``.

    Examples:
        >>> round(final_forecast(2500, 0.15, SafetyMargin.MODERATE).adjusted, 2)
        2645.0
    """
    return apply_safety_margin(base_amount * (1.0 + trend), margin)


class StatisticalDailyModel(ForecastModel):
    """Payout-history model for daily settlement accounts."""

    def __init__(
        self,
        recent_window: int = RECENT_PAYOUT_WINDOW,
        min_payouts: int = MIN_CONFIRMED_PAYOUTS,
        growth_window_days: int = GROWTH_WINDOW_DAYS,
        confidence_factor: float = DEFAULT_CONFIDENCE_FACTOR,
    ) -> None:
        """Initialize the model.

        Args:
            recent_window: Number of most recent confirmed payouts averaged
                into the base amount (default: 14)
            min_payouts: Minimum confirmed payouts required (default: 3)
            growth_window_days: Length of each growth comparison window
                (default: 30)
            confidence_factor: Multiplier on the standard deviation
                (default: 1.0)
        """
        self.recent_window = max(recent_window, min_payouts)
        self.min_payouts = min_payouts
        self.growth_window_days = growth_window_days
        self.confidence_factor = confidence_factor
        self.debug_: ModelDebugInfo | None = None

    def fit_records(self, records: Iterable[PayoutRecord], as_of: date) -> StatisticalFit:
        """Fit from payout records; only confirmed ones are used."""
        return self.train(confirmed_payout_series(records), as_of=as_of)

    def train(self, series: pd.Series, as_of: date | None = None, **_kwargs: Any) -> StatisticalFit:
        """Fit base amount, growth trend and variation.

        Args:
            series: Confirmed payout amounts indexed by payout date
            as_of: Evaluation date (default: last date in the series)
            **_kwargs: Unused, for interface compatibility

        Returns:
            StatisticalFit with the fitted parameters

        Raises:
            InsufficientDataError: If fewer than min_payouts payouts are given
        """
        series = series.sort_index()
        if as_of is not None:
            series = series[series.index <= pd.Timestamp(as_of)]
        count = int(len(series))
        if count < self.min_payouts:
            raise InsufficientDataError(
                f"Statistical daily model needs at least {self.min_payouts} confirmed "
                f"payouts, found {count}",
                available=count,
                required=self.min_payouts,
            )

        if as_of is None:
            as_of = series.index[-1].date()

        recent = series.iloc[-self.recent_window :]
        base_amount = float(recent.mean())
        trend = growth_trend(series, as_of, self.growth_window_days)
        std = float(np.std(series.to_numpy(dtype=float), ddof=1))
        variation = std * self.confidence_factor

        fit = StatisticalFit(
            base_amount=base_amount,
            growth_trend=trend,
            daily_variation=variation,
            payout_count=count,
            as_of=as_of,
        )
        logger.debug(
            f"Statistical fit: base={base_amount:.2f} growth={trend:.4f} "
            f"variation={variation:.2f} from {count} payouts"
        )
        return fit

    def forecast(self, model: StatisticalFit, steps: int, **kwargs: Any) -> pd.Series:
        """Flat pre-margin daily forecast.

        Args:
            model: StatisticalFit from train()
            steps: Number of days to forecast ahead
            **kwargs: Can include 'last_date' (date) - the day before the
                first forecast day. Defaults to the fit's as_of date.

        Returns:
            Forecast series with DateTimeIndex
        """
        last_date = kwargs.get("last_date") or model.as_of
        forecast_dates = pd.date_range(
            start=pd.Timestamp(last_date) + timedelta(days=1), periods=steps, freq="D"
        )
        forecast_series = pd.Series([model.raw_forecast] * steps, index=forecast_dates, dtype=float)

        self.debug_ = ModelDebugInfo(
            model_name="statistical_daily",
            data={
                "base_amount": model.base_amount,
                "growth_trend": model.growth_trend,
                "daily_variation": model.daily_variation,
                "payout_count": model.payout_count,
                "as_of": model.as_of.isoformat(),
            },
        )
        return forecast_series
