"""CLI wrapper for the payout forecasting pipeline.

This module provides a command-line interface for running forecasts.
All core forecasting logic is in payout_core.forecasting.api.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from datetime import date

from payout_core.config import load_account_config_file
from payout_core.forecasting.api import build_account_forecast
from payout_core.forecasting.data.loaders import load_events, load_payouts
from payout_core.forecasting.formatters.console import (
    format_forecast_for_console,
    sanitize_for_console,
)


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point for the forecasting pipeline.

    Parses command-line arguments, loads events, payouts and account config,
    runs the forecast and prints it.
    """
    parser = argparse.ArgumentParser(description="Run payout forecast for one account.")
    parser.add_argument("--events", type=str, required=True, help="Path to events CSV")
    parser.add_argument("--payouts", type=str, required=True, help="Path to payout history CSV")
    parser.add_argument("--config", type=str, required=True, help="Path to account config JSON")
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Evaluation date in YYYY-MM-DD format (default: today)",
    )
    parser.add_argument(
        "--horizon",
        type=int,
        default=None,
        help="Number of days to forecast ahead (default: from account config)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("=" * 60)
    print("Payout Forecasting Pipeline")
    print("=" * 60)

    try:
        print("\n[1/3] Loading account config and data...")
        config = load_account_config_file(args.config)
        if args.horizon is not None:
            config = replace(config, horizon_days=args.horizon)
        events = load_events(args.events)
        payouts = load_payouts(
            args.payouts,
            account_id=config.account_id,
            payout_type=config.payout_frequency.value,
        )
        print(f"[OK] Loaded {len(events)} events and {len(payouts)} payouts for {config.account_id}")

        as_of = args.as_of or date.today()
        print(f"\n[2/3] Generating {config.horizon_days}-day forecast as of {as_of}...")
        result = build_account_forecast(config, events, payouts, as_of=as_of)
        if result.ok:
            print(f"[OK] Generated {len(result.records)} forecast records")
        else:
            print(f"[WARNING] No forecast available: {result.error}")

        print("\n[3/3] Formatting results...")
        print("\n" + "=" * 60)
        print(sanitize_for_console(format_forecast_for_console(result)))
        print("=" * 60)

        print("\n[OK] Pipeline completed successfully")

    except Exception as e:
        print(f"\n[ERROR] Pipeline failed: {e}")
        raise


if __name__ == "__main__":
    main()
