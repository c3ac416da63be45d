"""Base model interface for forecasting models.

This module defines the abstract base class that all forecasting models must
implement, enabling a consistent interface for the payout-history and
transaction-trend models.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import pandas as pd


class ForecastModel(ABC):
    """Abstract base class for forecasting models.

    All forecasting models must implement the train() and forecast() methods
    to provide a consistent interface for the forecasting pipeline. Models
    must be deterministic: identical input produces identical output.
    """

    @abstractmethod
    def train(self, series: pd.Series, **kwargs) -> object:
        """Fit the model on a daily time series.

        Args:
            series: Time series with DateTimeIndex (raw amounts)
            **kwargs: Model-specific parameters

        Returns:
            Fitted model object (type depends on implementation)

        Raises:
            InsufficientDataError: If the series is too short to fit
        """
        pass

    @abstractmethod
    def forecast(self, model: object, steps: int, **kwargs) -> pd.Series:
        """Generate a pre-margin forecast from a fitted model.

        Args:
            model: Fitted model object (from train() method)
            steps: Number of days to forecast ahead
            **kwargs: Model-specific forecast parameters

        Returns:
            Forecast series with DateTimeIndex starting the day after
            ``last_date``
        """
        pass
