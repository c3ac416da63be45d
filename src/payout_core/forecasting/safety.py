"""Safety margin adjustment for forecast outputs.

The safety margin is a downside haircut chosen per account in three tiers.
It is a pure multiplier applied as the last step of every forecasting
pipeline and is never stored on the underlying raw forecast:

    adjusted = raw * (1 - margin)

Adjusted values are wrapped in AdjustedAmount so that a second application
is rejected instead of silently compounding the haircut.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from payout_core.exceptions import InvalidConfigError


class SafetyMargin(Enum):
    """User-selected downside margin tiers."""

    AGGRESSIVE = 0.03
    MODERATE = 0.08
    CONSERVATIVE = 0.15

    @property
    def percent(self) -> float:
        """Margin as a fraction, e.g. 0.08 for the moderate tier."""
        return self.value

    @property
    def multiplier(self) -> float:
        return 1.0 - self.value

    @classmethod
    def from_value(cls, value: SafetyMargin | str | int | float) -> SafetyMargin:
        """Parse a margin from a tier name or a stored percentage.

        Accepts the tier name ("moderate"), the integer percent stored in
        account settings (3, 8, 15) or the fraction (0.08).

        Raises:
            InvalidConfigError: If the value does not name a known tier.
        """
        if isinstance(value, SafetyMargin):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
            raise InvalidConfigError(f"Unknown safety margin tier: {value!r}")
        if isinstance(value, bool):
            raise InvalidConfigError(f"Unknown safety margin tier: {value!r}")
        if isinstance(value, (int, float)):
            fraction = value / 100.0 if value >= 1 else float(value)
            for tier in cls:
                if abs(tier.value - fraction) < 1e-9:
                    return tier
        raise InvalidConfigError(f"Unknown safety margin tier: {value!r}")


@dataclass(frozen=True)
class AdjustedAmount:
    """A forecast value after the safety margin has been applied.

    Attributes:
        raw: Value before the margin.
        margin: Tier that was applied.
        adjusted: raw * (1 - margin).
    """

    raw: float
    margin: SafetyMargin
    adjusted: float

    def __float__(self) -> float:
        return self.adjusted


def apply_safety_margin(raw: float, margin: SafetyMargin) -> AdjustedAmount:
    """Apply the safety margin to a raw forecast value.

    Args:
        raw: Pre-margin forecast value.
        margin: Safety margin tier.

    Returns:
        AdjustedAmount carrying both the raw and the adjusted value.

    Raises:
        TypeError: If raw has already been adjusted.

    Examples:
        >>> apply_safety_margin(1000.0, SafetyMargin.MODERATE).adjusted
        920.0
    """
    if isinstance(raw, AdjustedAmount):
        raise TypeError("Safety margin has already been applied to this value")
    raw = float(raw)
    return AdjustedAmount(raw=raw, margin=margin, adjusted=raw * margin.multiplier)


def remove_safety_margin(adjusted: float, margin: SafetyMargin) -> float:
    """Recover the raw value from an adjusted one."""
    return float(adjusted) / margin.multiplier
