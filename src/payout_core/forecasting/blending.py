"""Horizon-weighted blending of payout-history and transaction-trend signals.

    blended = A * w / 100 + B * (100 - w) / 100

where A is the payout-history estimate, B the transaction-trend estimate and
w the account's payout-history weight for the forecast's horizon. The horizon
is a pure function of the number of days between the evaluation date and the
forecast date: [0, 30) near, [30, 60) mid, [60, inf) far.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from payout_core.exceptions import InvalidConfigError
from payout_core.forecasting.config import (
    DEFAULT_PAYOUT_HISTORY_WEIGHTS,
    MID_HORIZON_END,
    NEAR_HORIZON_END,
)


class Horizon(str, Enum):
    """Forward-looking time buckets used to pick blending weights."""

    NEAR = "near"
    MID = "mid"
    FAR = "far"


def select_horizon(forecast_date: date, today: date) -> Horizon:
    """Pick the horizon bucket for a forecast date.

    Raises:
        ValueError: If forecast_date is before today.

    Examples:
        >>> select_horizon(date(2025, 1, 30), date(2025, 1, 1))
        <Horizon.NEAR: 'near'>
        >>> select_horizon(date(2025, 1, 31), date(2025, 1, 1))
        <Horizon.MID: 'mid'>
    """
    days_ahead = (forecast_date - today).days
    if days_ahead < 0:
        raise ValueError(f"Forecast date {forecast_date} is before {today}")
    if days_ahead < NEAR_HORIZON_END:
        return Horizon.NEAR
    if days_ahead < MID_HORIZON_END:
        return Horizon.MID
    return Horizon.FAR


def _validate_weight(horizon: Horizon, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigError(
            f"Payout history weight for '{horizon.value}' must be a number, got {value!r}"
        )
    if not 0 <= value <= 100:
        raise InvalidConfigError(
            f"Payout history weight for '{horizon.value}' must be within [0, 100], got {value}"
        )
    return float(value)


@dataclass(frozen=True)
class ForecastWeightConfig:
    """Per-account blending weights, validated on construction.

    Attributes:
        payout_history_weights: Payout-history weight (0-100) for every
            horizon. The transaction-trend weight is the complement.

    Raises:
        InvalidConfigError: If a horizon is missing or a weight is outside
            [0, 100].
    """

    payout_history_weights: Mapping[Horizon, float] = field(
        default_factory=lambda: {
            Horizon(name): float(weight) for name, weight in DEFAULT_PAYOUT_HISTORY_WEIGHTS.items()
        }
    )

    def __post_init__(self) -> None:
        weights: dict[Horizon, float] = {}
        for key, value in self.payout_history_weights.items():
            try:
                horizon = Horizon(key)
            except ValueError as e:
                raise InvalidConfigError(f"Unknown forecast horizon: {key!r}") from e
            weights[horizon] = _validate_weight(horizon, value)

        missing = [h.value for h in Horizon if h not in weights]
        if missing:
            raise InvalidConfigError(f"Missing payout history weight for horizons: {missing}")

        object.__setattr__(self, "payout_history_weights", weights)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ForecastWeightConfig:
        """Build from a mapping like {"near": 75, "mid": 50, "far": 25}.

        Values may also be mappings with a 'payout_history_weight' key.
        """
        weights: dict[Any, Any] = {}
        for key, value in data.items():
            if isinstance(value, Mapping):
                if "payout_history_weight" not in value:
                    raise InvalidConfigError(
                        f"Missing payout_history_weight for horizon {key!r}"
                    )
                value = value["payout_history_weight"]
            weights[key] = value
        return cls(payout_history_weights=weights)

    def payout_history_weight(self, horizon: Horizon) -> float:
        return self.payout_history_weights[horizon]

    def transaction_trend_weight(self, horizon: Horizon) -> float:
        return 100.0 - self.payout_history_weights[horizon]

    def to_dict(self) -> dict[str, float]:
        return {h.value: self.payout_history_weights[h] for h in Horizon}


def blend(history_signal: float, trend_signal: float | None, payout_history_weight: float) -> float:
    """Blend the two signals with the given payout-history weight.

    When the trend signal is unavailable the history signal is used alone.

    Examples:
        >>> blend(1000.0, 1400.0, 75)
        1100.0
    """
    if trend_signal is None:
        return history_signal
    w = payout_history_weight / 100.0
    return history_signal * w + trend_signal * (1.0 - w)


def blend_for_date(
    history_signal: float,
    trend_signal: float | None,
    forecast_date: date,
    today: date,
    weights: ForecastWeightConfig,
) -> tuple[float, Horizon]:
    """Blend using the horizon-appropriate weight for ``forecast_date``."""
    horizon = select_horizon(forecast_date, today)
    return blend(history_signal, trend_signal, weights.payout_history_weight(horizon)), horizon
