"""Payout Core - marketplace payout forecasting.

This package predicts future marketplace settlement payouts for e-commerce
sellers from their financial events and payout history:

- **Events**: raw marketplace events normalized to FinancialEvent
- **Forecasting**: settlement windows, statistical daily model, horizon
  blending and safety margin
- **Accuracy**: forecast-versus-actual log and trailing accuracy

Module Structure:
    payout_core.events: Event classification and net amount derivation
    payout_core.forecasting: Models and the in-memory forecast pipeline
    payout_core.accuracy: Accuracy tracking
    payout_core.store: Payout record stores
    payout_core.service: Regeneration service
    payout_core.config: AccountConfig

Quick Start:
    >>> from datetime import date
    >>> from payout_core import AccountConfig
    >>> from payout_core.forecasting import build_account_forecast
    >>>
    >>> config = AccountConfig(account_id="acct-1", payout_frequency="daily")
    >>> result = build_account_forecast(config, events, payouts, as_of=date(2025, 1, 1))
    >>> print(result.forecast.head())
"""

__version__ = "0.1.0"

from payout_core.config import AccountConfig, load_account_config, load_account_config_file
from payout_core.exceptions import (
    ConfigError,
    DataQualityError,
    InsufficientDataError,
    InvalidConfigError,
    MalformedEventError,
    PayoutForecastError,
    RegenerationConflictError,
)

__all__ = [
    "AccountConfig",
    "ConfigError",
    "DataQualityError",
    "InsufficientDataError",
    "InvalidConfigError",
    "MalformedEventError",
    "PayoutForecastError",
    "RegenerationConflictError",
    "__version__",
    "load_account_config",
    "load_account_config_file",
]
