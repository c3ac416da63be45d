"""Console output formatting utilities."""

from __future__ import annotations

import re

from payout_core.forecasting.api import ForecastResult


def sanitize_for_console(text: str) -> str:
    """Sanitize text for console output by removing non-ASCII characters and HTML tags.

    This prevents UnicodeEncodeError on Windows console which uses cp1252 encoding.

    Args:
        text: Text that may contain non-ASCII characters and HTML tags

    Returns:
        Sanitized text safe for console output
    """
    text = re.sub(r'[^\x00-\x7F]+', '', text)
    text = re.sub(r'<[^>]+>', '', text)
    return text


def format_forecast_for_console(result: ForecastResult) -> str:
    """Build a human-readable string of the forecast and settlement windows.

    Args:
        result: ForecastResult from build_account_forecast

    Returns:
        Human-readable text string for console output
    """
    lines = []
    horizon_days = result.metadata.get("horizon_days", 0)
    lines.append(f"Payout Forecast - {result.account_id} - Next {horizon_days} Days")
    lines.append("=" * 60)

    if not result.ok:
        lines.append(f"No forecast available: {result.error}")
        if result.skipped_events:
            lines.append(f"Skipped {result.skipped_events} malformed events")
        return "\n".join(lines)

    if not result.records:
        lines.append("No forecasts available.")
        return "\n".join(lines)

    lines.append("")
    total = 0.0
    for record in result.records:
        day_name = record.payout_date.strftime("%a")
        date_str = record.payout_date.strftime("%Y-%m-%d")
        line = f"  {day_name} {date_str}: ${record.total_amount:,.2f}"
        if record.uncertainty:
            line += f" (+/- ${record.uncertainty:,.2f})"
        if record.modeling_method:
            line += f" [{record.modeling_method}]"
        lines.append(line)
        total += record.total_amount
    lines.append(f"  Total: ${total:,.2f}")
    lines.append("")

    if result.settlement_periods:
        lines.append("Settlement Windows:")
        lines.append("-" * 60)
        for period in result.settlement_periods:
            lines.append(f"{period.start_date} to {period.end_date}:")
            lines.append(f"  Eligible: ${period.eligible_amount:,.2f}")
            if period.reserve_amount:
                lines.append(f"  Reserve: -${period.reserve_amount:,.2f}")
            if period.prior_balance:
                lines.append(f"  Prior balance: ${period.prior_balance:,.2f}")
            if period.adjustments:
                lines.append(f"  Adjustments: ${period.adjustments:,.2f}")
            lines.append(f"  Payout: ${period.display_payout:,.2f}")
            lines.append("")

    if result.skipped_events:
        lines.append(f"Skipped {result.skipped_events} malformed events")

    return "\n".join(lines)
