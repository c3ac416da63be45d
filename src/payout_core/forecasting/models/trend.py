"""Transaction-trend model based on recent order velocity.

Fits an ordinary least squares line to daily order net amounts over a short
trailing window (two weeks by default) and projects forward:

    projected(k) = mean_daily + slope * k

where k is the number of days ahead. Projections are floored at zero since
order revenue cannot go negative. This is the "transaction trend" signal
blended with payout history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import numpy as np
import pandas as pd
import statsmodels.api as sm

from payout_core.exceptions import InsufficientDataError
from payout_core.forecasting.config import MIN_TREND_DAYS
from payout_core.forecasting.models.base import ForecastModel
from payout_core.forecasting.types import ModelDebugInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrendFit:
    """Fitted order-velocity trend.

    Attributes:
        mean_daily: Mean daily order net amount over the window.
        slope: OLS slope in amount per day.
        active_days: Days in the window with at least one order.
        window_days: Length of the fitted window.
    """

    mean_daily: float
    slope: float
    active_days: int
    window_days: int

    def project(self, days_ahead: int) -> float:
        """Projected daily order net amount ``days_ahead`` days out."""
        return max(0.0, self.mean_daily + self.slope * days_ahead)

    def project_window(self, first_day_ahead: int, days: int) -> float:
        """Sum of daily projections over a window of ``days`` days."""
        return float(sum(self.project(first_day_ahead + i) for i in range(days)))


class TransactionTrendModel(ForecastModel):
    """Linear order-velocity model."""

    def __init__(self, min_active_days: int = MIN_TREND_DAYS) -> None:
        """Initialize the trend model.

        Args:
            min_active_days: Minimum days with orders required to fit (default: 3)
        """
        self.min_active_days = min_active_days
        self.debug_: ModelDebugInfo | None = None

    def train(self, series: pd.Series, **_kwargs: Any) -> TrendFit:
        """Fit an OLS trend line to a daily order series.

        Args:
            series: Daily order net amounts with DateTimeIndex, missing days
                already filled with 0.0 (see daily_order_series)
            **_kwargs: Unused, for interface compatibility

        Returns:
            TrendFit

        Raises:
            InsufficientDataError: If fewer than min_active_days have orders
        """
        values = series.sort_index().astype(float).to_numpy()
        active_days = int(np.count_nonzero(values))
        if active_days < self.min_active_days:
            raise InsufficientDataError(
                f"Transaction trend needs at least {self.min_active_days} days with orders, "
                f"found {active_days}",
                available=active_days,
                required=self.min_active_days,
            )

        x = sm.add_constant(np.arange(len(values), dtype=float))
        result = sm.OLS(values, x).fit()
        slope = float(result.params[1])
        mean_daily = float(values.mean())

        logger.debug(f"Trend fit: mean={mean_daily:.2f}/day slope={slope:.4f} over {len(values)} days")
        return TrendFit(
            mean_daily=mean_daily,
            slope=slope,
            active_days=active_days,
            window_days=len(values),
        )

    def forecast(self, model: TrendFit, steps: int, **kwargs: Any) -> pd.Series:
        """Project daily order net amounts.

        Args:
            model: TrendFit from train()
            steps: Number of days to forecast ahead
            **kwargs: Must include 'last_date' (date) - the evaluation date;
                the first forecast day is one day later

        Returns:
            Forecast series with DateTimeIndex
        """
        last_date: date = kwargs["last_date"]
        forecast_dates = pd.date_range(
            start=pd.Timestamp(last_date) + timedelta(days=1), periods=steps, freq="D"
        )
        values = [model.project(k) for k in range(1, steps + 1)]

        self.debug_ = ModelDebugInfo(
            model_name="transaction_trend",
            data={
                "mean_daily": model.mean_daily,
                "slope": model.slope,
                "active_days": model.active_days,
                "window_days": model.window_days,
            },
        )
        return pd.Series(values, index=forecast_dates, dtype=float)
