"""Account-level configuration for the payout forecasting engine.

This module provides a single, explicit configuration object that is passed
into every calculation. Nothing in the engine reads configuration from
global state.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from payout_core.exceptions import ConfigError, InvalidConfigError
from payout_core.forecasting.blending import ForecastWeightConfig
from payout_core.forecasting.config import (
    DEFAULT_CONFIDENCE_FACTOR,
    DEFAULT_RESERVE_LAG_DAYS,
    DEFAULT_RESERVE_MULTIPLIER,
    ESTIMATED_DELIVERY_DAYS,
    FORECAST_DAYS,
    RECENT_PAYOUT_WINDOW,
    SETTLEMENT_PERIOD_DAYS,
    TREND_LOOKBACK_DAYS,
)
from payout_core.forecasting.safety import SafetyMargin
from payout_core.forecasting.types import ForecastMethod, PayoutFrequency


@dataclass(frozen=True)
class AccountConfig:
    """Forecasting settings for one marketplace account.

    Attributes:
        account_id: Account identifier.
        payout_frequency: Settlement cadence (bi-weekly or daily).
        reserve_lag_days: Days from delivery until funds unlock.
        reserve_multiplier: Fraction of locked funds held back (0-1).
        safety_margin: Downside margin tier applied to every output.
        weights: Horizon blending weights.
        return_rate: Historical return rate applied to order net amounts.
        chargeback_rate: Historical chargeback rate applied to order net amounts.
        settlement_period_days: Settlement window length for bi-weekly accounts.
        estimated_delivery_days: Assumed delivery time for undated orders.
        horizon_days: Number of days ahead to forecast.
        recent_payout_window: Confirmed payouts averaged into the base amount.
        confidence_factor: Multiplier on payout standard deviation.
        trend_lookback_days: Days of order history for the trend signal.
        opening_balance: Balance carried into the first settlement window.
        min_reserve_floor: Minimum reserve held in a settlement window with
            order activity.
        forecast_method: Model family ("auto" or "seasonality").

    Raises:
        InvalidConfigError: If any value is out of range.
    """

    account_id: str
    payout_frequency: PayoutFrequency = PayoutFrequency.BI_WEEKLY
    reserve_lag_days: int = DEFAULT_RESERVE_LAG_DAYS
    reserve_multiplier: float = DEFAULT_RESERVE_MULTIPLIER
    safety_margin: SafetyMargin = SafetyMargin.MODERATE
    weights: ForecastWeightConfig = field(default_factory=ForecastWeightConfig)
    return_rate: float = 0.0
    chargeback_rate: float = 0.0
    settlement_period_days: int = SETTLEMENT_PERIOD_DAYS
    estimated_delivery_days: int = ESTIMATED_DELIVERY_DAYS
    horizon_days: int = FORECAST_DAYS
    recent_payout_window: int = RECENT_PAYOUT_WINDOW
    confidence_factor: float = DEFAULT_CONFIDENCE_FACTOR
    trend_lookback_days: int = TREND_LOOKBACK_DAYS
    opening_balance: float = 0.0
    min_reserve_floor: float = 0.0
    forecast_method: ForecastMethod = ForecastMethod.AUTO

    def __post_init__(self) -> None:
        if not self.account_id:
            raise InvalidConfigError("account_id is required")
        try:
            object.__setattr__(self, "payout_frequency", PayoutFrequency(self.payout_frequency))
        except ValueError as e:
            raise InvalidConfigError(
                f"Unknown payout frequency: {self.payout_frequency!r}"
            ) from e
        try:
            object.__setattr__(self, "forecast_method", ForecastMethod(self.forecast_method))
        except ValueError as e:
            raise InvalidConfigError(
                f"Unknown forecast method: {self.forecast_method!r}"
            ) from e
        object.__setattr__(self, "safety_margin", SafetyMargin.from_value(self.safety_margin))
        if isinstance(self.weights, Mapping):
            object.__setattr__(self, "weights", ForecastWeightConfig.from_mapping(self.weights))

        if self.reserve_lag_days < 0:
            raise InvalidConfigError(f"reserve_lag_days must be >= 0, got {self.reserve_lag_days}")
        if not 0.0 <= self.reserve_multiplier <= 1.0:
            raise InvalidConfigError(
                f"reserve_multiplier must be within [0, 1], got {self.reserve_multiplier}"
            )
        for name in ("return_rate", "chargeback_rate"):
            value = getattr(self, name)
            if not 0.0 <= value < 1.0:
                raise InvalidConfigError(f"{name} must be within [0, 1), got {value}")
        for name in (
            "settlement_period_days",
            "horizon_days",
            "recent_payout_window",
            "trend_lookback_days",
        ):
            if getattr(self, name) <= 0:
                raise InvalidConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.estimated_delivery_days < 0:
            raise InvalidConfigError(
                f"estimated_delivery_days must be >= 0, got {self.estimated_delivery_days}"
            )
        if self.min_reserve_floor < 0:
            raise InvalidConfigError(
                f"min_reserve_floor must be >= 0, got {self.min_reserve_floor}"
            )
        if self.confidence_factor < 0:
            raise InvalidConfigError(
                f"confidence_factor must be >= 0, got {self.confidence_factor}"
            )

    def with_weights(self, weights: ForecastWeightConfig) -> AccountConfig:
        """Return a copy of this config with new blending weights."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["weights"] = weights
        return AccountConfig(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a JSON-friendly dictionary."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["payout_frequency"] = self.payout_frequency.value
        values["forecast_method"] = self.forecast_method.value
        values["safety_margin"] = self.safety_margin.name.lower()
        values["weights"] = self.weights.to_dict()
        return values


def load_account_config(data: Mapping[str, Any]) -> AccountConfig:
    """Build an AccountConfig from a settings mapping.

    Unknown keys are ignored so that settings blobs carrying UI state can be
    passed in directly.

    Raises:
        InvalidConfigError: If values are out of range or account_id is missing.
    """
    known = {f.name for f in fields(AccountConfig)}
    values = {key: value for key, value in data.items() if key in known}
    if "account_id" not in values:
        raise InvalidConfigError("account_id is required")
    try:
        return AccountConfig(**values)
    except TypeError as e:
        raise InvalidConfigError(f"Invalid account configuration: {e}") from e


def load_account_config_file(path: str | Path) -> AccountConfig:
    """Load an AccountConfig from a JSON file.

    Raises:
        ConfigError: If the file is missing or not valid JSON.
        InvalidConfigError: If values are out of range.
    """
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise ConfigError(f"Account config not found at {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Account config at {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Account config at {path} must be a JSON object")
    return load_account_config(data)
