"""Example: Payout forecasting and regeneration workflow

This example demonstrates how to forecast payouts for a bi-weekly marketplace
account, regenerate the stored forecasts through ForecastService, change the
blending weights and log accuracy when a payout is confirmed.

Prerequisites:
- Export financial events to data/events.csv (id, timestamp, type,
  gross_amount, fees, shipping_cost, ads_cost, order_id, delivery_date)
- Export payout history to data/payouts.csv (payout_date, total_amount, status)
- Modify the account settings below as needed
"""

from datetime import date
from pathlib import Path

from payout_core import AccountConfig
from payout_core.forecasting import build_account_forecast
from payout_core.forecasting.data import load_events, load_payouts
from payout_core.forecasting.types import PayoutRecord, PayoutStatus
from payout_core.service import ForecastService
from payout_core.store import JsonPayoutStore

data_root = Path("data")
as_of = date(2025, 11, 24)  # MODIFY AS NEEDED

config = AccountConfig(
    account_id="acct-1",
    payout_frequency="bi-weekly",
    reserve_lag_days=7,
    safety_margin="moderate",
    return_rate=0.02,
    chargeback_rate=0.005,
)

print("Loading events and payout history...")
events = load_events(data_root / "events.csv")
payouts = load_payouts(data_root / "payouts.csv", account_id=config.account_id)
print(f"Loaded {len(events)} events and {len(payouts)} payouts")

# In-memory forecast, nothing is stored
result = build_account_forecast(config, events, payouts, as_of=as_of)
if not result.ok:
    print(f"No forecast available: {result.error}")
else:
    print("\nForecast DataFrame:")
    print(result.forecast[["payout_date", "total_amount", "modeling_method"]])

    print("\nSettlement windows:")
    for period in result.settlement_periods:
        print(
            f"{period.start_date} - {period.end_date}: eligible ${period.eligible_amount:,.2f}, "
            f"reserve ${period.reserve_amount:,.2f}, payout ${period.display_payout:,.2f}"
        )


class CsvEventFeed:
    """Event feed backed by the exported CSV file."""

    def fetch_events(self, account_id, start, end):
        return events


# Stored forecasts: regenerate, then change the horizon weights
store = JsonPayoutStore(data_root / "payouts_store")
for record in payouts:
    store.save_record(record)

service = ForecastService(CsvEventFeed(), store, configs=[config])
regeneration = service.regenerate(config.account_id, as_of)
print(f"\nRegeneration: {regeneration.status}, {regeneration.records_written} records written")

update = service.update_weights(config.account_id, {"near": 90, "mid": 60, "far": 30}, as_of)
print(f"Weight update applied: {update.applied}")

# Confirm the next payout and log forecast accuracy
forecasts = [r for r in store.list_records(config.account_id) if r.status is PayoutStatus.FORECASTED]
if forecasts:
    upcoming = forecasts[0]
    actual = PayoutRecord(
        id=f"payout_{config.account_id}_{upcoming.payout_date.isoformat()}",
        account_id=config.account_id,
        payout_date=upcoming.payout_date,
        total_amount=upcoming.total_amount * 1.05,
        status=PayoutStatus.CONFIRMED,
        payout_type=config.payout_frequency.value,
    )
    entry = service.confirm_payout(actual)
    if entry is not None:
        print(f"\nForecast error for {entry.payout_date}: {entry.difference_percentage:+.2f}%")
    print(f"Trailing accuracy: {service.tracker.aggregate_accuracy(config.account_id)}")
