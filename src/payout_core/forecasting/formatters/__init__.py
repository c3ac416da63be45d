"""Output formatting utilities."""

from payout_core.forecasting.formatters.console import (
    format_forecast_for_console,
    sanitize_for_console,
)

__all__ = ["format_forecast_for_console", "sanitize_for_console"]
