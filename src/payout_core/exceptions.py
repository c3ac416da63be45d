"""Domain-specific exceptions for the payout forecasting engine.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from PayoutForecastError for easy catching.
"""

from __future__ import annotations


class PayoutForecastError(Exception):
    """Base exception for all payout forecasting errors.

    Callers can catch this exception to handle any engine error. Nothing
    raised from this package is meant to be fatal to the host application:
    a forecast failure degrades to "no forecast available".
    """

    pass


class ConfigError(PayoutForecastError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - Invalid configuration values are provided
    - Required configuration is missing
    - Configuration files cannot be loaded or parsed
    """

    pass


class InvalidConfigError(ConfigError):
    """Raised when account or weight configuration fails validation.

    This exception is raised when:
    - A horizon weight is outside [0, 100]
    - The payout-history weight for a horizon is missing
    - Reserve, margin or frequency settings are out of range

    Computation aborts before any forecast record is written.
    """

    pass


class DataQualityError(PayoutForecastError):
    """Raised when input data is structurally unusable.

    This exception is raised when:
    - Required columns are missing from an input file
    - An input file cannot be interpreted as events or payouts
    """

    pass


class MalformedEventError(DataQualityError):
    """Raised when a raw financial event cannot be normalized.

    The event is missing its timestamp or amount, or carries a value that is
    not numeric. Batch normalization skips such events and counts them.
    """

    def __init__(self, message: str, event_id: str | None = None) -> None:
        super().__init__(message)
        self.event_id = event_id


class InsufficientDataError(PayoutForecastError):
    """Raised when there are too few confirmed payouts to forecast.

    The statistical model declines to forecast instead of returning a
    low-confidence guess; callers must show this distinctly from a zero
    forecast.
    """

    def __init__(self, message: str, available: int = 0, required: int = 0) -> None:
        super().__init__(message)
        self.available = available
        self.required = required


class RegenerationConflictError(PayoutForecastError):
    """Raised when a regeneration for the same account is already running.

    The second caller should retry later instead of proceeding concurrently.
    """

    def __init__(self, account_id: str) -> None:
        super().__init__(
            f"Forecast regeneration already in progress for account '{account_id}'; retry later"
        )
        self.account_id = account_id
