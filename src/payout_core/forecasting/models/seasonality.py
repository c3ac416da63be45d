"""Seasonality payout model.

Projects one payout per month from the average of the most recent confirmed
payouts, scaled by three factors:

- a calendar multiplier for the target month (Q4 sales peak in January,
  slower disbursements in February, a Prime Day bump in July),
- growth: average payout over the last 90 days divided by the average over
  the 90 days before,
- momentum: the same ratio over 30-day windows.

A ratio is 1.0 when either of its windows is empty or the earlier average
is not positive. Forecasts land on the 15th of each month.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

import pandas as pd

from payout_core.exceptions import InsufficientDataError
from payout_core.forecasting.config import (
    MIN_CONFIRMED_PAYOUTS,
    SEASONALITY_BASE_PAYOUTS,
    SEASONALITY_GROWTH_DAYS,
    SEASONALITY_MOMENTUM_DAYS,
    SEASONALITY_MULTIPLIERS,
    SEASONALITY_PAYOUT_DAY,
)
from payout_core.forecasting.data.preparation import confirmed_payout_series
from payout_core.forecasting.models.base import ForecastModel
from payout_core.forecasting.types import ModelDebugInfo, PayoutRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeasonalityFit:
    """Parameters fitted from confirmed payout history.

    Attributes:
        avg_payout: Mean of the most recent confirmed payouts.
        growth_trend: Ratio of the last 90-day average to the prior one.
        momentum_factor: Ratio of the last 30-day average to the prior one.
        payout_count: Number of confirmed payouts up to as_of.
        as_of: Evaluation date the ratio windows are anchored to.
    """

    avg_payout: float
    growth_trend: float
    momentum_factor: float
    payout_count: int
    as_of: date

    def amount_for_month(self, month: int, multipliers: Mapping[int, float]) -> float:
        """Pre-margin payout for a calendar month (1-12)."""
        return self.avg_payout * multipliers[month] * self.growth_trend * self.momentum_factor


def average_ratio(series: pd.Series, as_of: date, window_days: int) -> float:
    """Mean payout of the last window divided by the mean of the one before.

    The last window covers [as_of - window_days, as_of] and the previous one
    the window_days before it.

    Examples:
        >>> s = pd.Series([100.0, 150.0], index=pd.to_datetime(["2025-01-10", "2025-02-20"]))
        >>> average_ratio(s, date(2025, 3, 1), 30)
        1.5
    """
    as_of_ts = pd.Timestamp(as_of)
    last_start = as_of_ts - pd.Timedelta(days=window_days)
    prev_start = last_start - pd.Timedelta(days=window_days)

    last = series[(series.index >= last_start) & (series.index <= as_of_ts)]
    prev = series[(series.index >= prev_start) & (series.index < last_start)]
    if last.empty or prev.empty:
        return 1.0
    prev_mean = float(prev.mean())
    if prev_mean <= 0:
        return 1.0
    return float(last.mean()) / prev_mean


def monthly_payout_dates(as_of: date, months: int, day: int = SEASONALITY_PAYOUT_DAY) -> list[date]:
    """Payout dates on ``day`` of each of the next ``months`` months.

    Examples:
        >>> monthly_payout_dates(date(2025, 11, 20), 3)
        [datetime.date(2025, 12, 15), datetime.date(2026, 1, 15), datetime.date(2026, 2, 15)]
    """
    first = pd.Timestamp(as_of.year, as_of.month, day)
    return [(first + pd.DateOffset(months=i)).date() for i in range(1, months + 1)]


class SeasonalityModel(ForecastModel):
    """Monthly payout model with calendar seasonality."""

    def __init__(
        self,
        base_payouts: int = SEASONALITY_BASE_PAYOUTS,
        min_payouts: int = MIN_CONFIRMED_PAYOUTS,
        growth_days: int = SEASONALITY_GROWTH_DAYS,
        momentum_days: int = SEASONALITY_MOMENTUM_DAYS,
        multipliers: Mapping[int, float] = SEASONALITY_MULTIPLIERS,
    ) -> None:
        self.base_payouts = base_payouts
        self.min_payouts = max(min_payouts, base_payouts)
        self.growth_days = growth_days
        self.momentum_days = momentum_days
        self.multipliers = dict(multipliers)
        self.debug_: ModelDebugInfo | None = None

    def fit_records(self, records: Iterable[PayoutRecord], as_of: date) -> SeasonalityFit:
        """Fit from payout records; only confirmed ones are used."""
        return self.train(confirmed_payout_series(records), as_of=as_of)

    def train(self, series: pd.Series, as_of: date | None = None, **_kwargs: Any) -> SeasonalityFit:
        """Fit the base average, growth trend and momentum factor.

        Args:
            series: Confirmed payout amounts indexed by payout date
            as_of: Evaluation date (default: last date in the series)
            **_kwargs: Unused, for interface compatibility

        Returns:
            SeasonalityFit with the fitted parameters

        Raises:
            InsufficientDataError: If fewer than min_payouts payouts are given
        """
        series = series.sort_index()
        if as_of is not None:
            series = series[series.index <= pd.Timestamp(as_of)]
        count = int(len(series))
        if count < self.min_payouts:
            raise InsufficientDataError(
                f"Seasonality model needs at least {self.min_payouts} confirmed "
                f"payouts, found {count}",
                available=count,
                required=self.min_payouts,
            )
        if as_of is None:
            as_of = series.index[-1].date()

        fit = SeasonalityFit(
            avg_payout=float(series.iloc[-self.base_payouts :].mean()),
            growth_trend=average_ratio(series, as_of, self.growth_days),
            momentum_factor=average_ratio(series, as_of, self.momentum_days),
            payout_count=count,
            as_of=as_of,
        )
        logger.debug(
            f"Seasonality fit: avg={fit.avg_payout:.2f} growth={fit.growth_trend:.3f} "
            f"momentum={fit.momentum_factor:.3f} from {count} payouts"
        )
        return fit

    def forecast(self, model: SeasonalityFit, steps: int, **kwargs: Any) -> pd.Series:
        """Pre-margin monthly forecast.

        Args:
            model: SeasonalityFit from train()
            steps: Number of months to forecast ahead
            **kwargs: Can include 'last_date' (date) - months are counted
                from it. Defaults to the fit's as_of date.

        Returns:
            Forecast series indexed by payout date (one per month)
        """
        last_date = kwargs.get("last_date") or model.as_of
        payout_dates = monthly_payout_dates(last_date, steps)
        values = [model.amount_for_month(d.month, self.multipliers) for d in payout_dates]
        forecast_series = pd.Series(values, index=pd.DatetimeIndex(payout_dates), dtype=float)

        self.debug_ = ModelDebugInfo(
            model_name="seasonality",
            data={
                "avg_payout": model.avg_payout,
                "growth_trend": model.growth_trend,
                "momentum_factor": model.momentum_factor,
                "payout_count": model.payout_count,
                "multipliers": {d.isoformat(): self.multipliers[d.month] for d in payout_dates},
            },
        )
        return forecast_series
