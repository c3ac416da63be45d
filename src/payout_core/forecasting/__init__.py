"""Payout forecasting module.

Example:
    >>> from datetime import date
    >>> from payout_core import AccountConfig
    >>> from payout_core.forecasting import build_account_forecast
    >>>
    >>> config = AccountConfig(account_id="acct-1", payout_frequency="bi-weekly")
    >>> result = build_account_forecast(config, raw_events, payout_history, as_of=date(2025, 1, 1))
    >>>
    >>> if result.ok:
    ...     print(result.forecast.head())  # One row per forecast payout date
    ... else:
    ...     print(result.error)  # e.g. InsufficientDataError

"""

from payout_core.forecasting.api import ForecastResult, build_account_forecast

__all__ = ["ForecastResult", "build_account_forecast"]
