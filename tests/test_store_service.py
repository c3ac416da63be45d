"""Tests for payout stores and the regeneration service."""

import threading
from dataclasses import replace
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from payout_core.config import AccountConfig
from payout_core.exceptions import InsufficientDataError, InvalidConfigError, RegenerationConflictError
from payout_core.forecasting.types import PayoutRecord, PayoutStatus, forecast_record_id
from payout_core.service import ForecastService
from payout_core.store import InMemoryPayoutStore, JsonPayoutStore, roll_over_records

AS_OF = date(2025, 3, 1)


class StaticFeed:
    """Event feed returning the same events for every account."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.calls: list = []

    def fetch_events(self, account_id: str, start: date, end: date) -> list:
        self.calls.append((account_id, start, end))
        return list(self.events)


class BlockingFeed(StaticFeed):
    """Feed that blocks until released, to hold a regeneration open."""

    def __init__(self, events: list) -> None:
        super().__init__(events)
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_events(self, account_id: str, start: date, end: date) -> list:
        self.entered.set()
        self.release.wait(timeout=5)
        return super().fetch_events(account_id, start, end)


class FailingFeed:
    def fetch_events(self, account_id: str, start: date, end: date) -> list:
        raise RuntimeError("marketplace API unavailable")


def _confirmed(account_id: str, payout_date: date, amount: float) -> PayoutRecord:
    return PayoutRecord(
        id=f"payout_{account_id}_{payout_date.isoformat()}",
        account_id=account_id,
        payout_date=payout_date,
        total_amount=amount,
        status=PayoutStatus.CONFIRMED,
        payout_type="daily",
    )


def _forecast(account_id: str, payout_date: date, amount: float) -> PayoutRecord:
    return PayoutRecord(
        id=forecast_record_id(account_id, payout_date),
        account_id=account_id,
        payout_date=payout_date,
        total_amount=amount,
        status=PayoutStatus.FORECASTED,
        payout_type="daily",
        generated_at=datetime(2025, 2, 1),
    )


def _history(account_id: str = "acct-1", days: int = 60) -> list[PayoutRecord]:
    return [_confirmed(account_id, AS_OF - timedelta(days=i), 100.0) for i in range(days)]


def _order_events(days: int = 14) -> list[dict]:
    return [
        {
            "id": f"order-{i}",
            "timestamp": (AS_OF - timedelta(days=i)).isoformat() + "T10:00:00",
            "type": "Order",
            "gross_amount": 200.0,
        }
        for i in range(1, days + 1)
    ]


@pytest.fixture
def daily_config() -> AccountConfig:
    return AccountConfig(account_id="acct-1", payout_frequency="daily", horizon_days=90)


@pytest.fixture
def store() -> InMemoryPayoutStore:
    return InMemoryPayoutStore(_history())


def _forecasts(records: list[PayoutRecord]) -> list[PayoutRecord]:
    return [r for r in records if r.status is PayoutStatus.FORECASTED]


class TestStores:
    """Tests for store-level invariants."""

    def test_status_never_moves_backwards(self, store: InMemoryPayoutStore) -> None:
        """Test a confirmed payout cannot be replaced by a forecast or estimate."""
        payout_date = AS_OF - timedelta(days=1)
        forecast = PayoutRecord(
            id=forecast_record_id("acct-1", payout_date),
            account_id="acct-1",
            payout_date=payout_date,
            total_amount=1.0,
            status=PayoutStatus.FORECASTED,
            payout_type="daily",
        )

        with pytest.raises(ValueError):
            store.save_record(forecast)
        with pytest.raises(ValueError):
            store.save_record(replace(forecast, status=PayoutStatus.ESTIMATED))

    def test_replace_forecasts_skips_settled_dates(self, store: InMemoryPayoutStore) -> None:
        """Test forecasts are not written on dates that already have a confirmed payout."""
        payout_date = AS_OF - timedelta(days=1)
        forecast = PayoutRecord(
            id=forecast_record_id("acct-1", payout_date),
            account_id="acct-1",
            payout_date=payout_date,
            total_amount=1.0,
            status=PayoutStatus.FORECASTED,
            payout_type="daily",
        )

        inserted = store.replace_forecasts("acct-1", AS_OF - timedelta(days=5), date.max, [forecast])

        assert inserted == 0
        assert _forecasts(store.list_records("acct-1")) == []

    def test_replace_forecasts_rejects_non_forecasts(self, store: InMemoryPayoutStore) -> None:
        """Test only forecasted records for the account can be bulk-replaced."""
        with pytest.raises(ValueError):
            store.replace_forecasts("acct-1", AS_OF, date.max, [_confirmed("acct-1", AS_OF, 1.0)])
        with pytest.raises(ValueError):
            store.replace_forecasts("acct-2", AS_OF, date.max, _history("acct-1", days=1))

    def test_json_store_round_trip(self, tmp_path: Path) -> None:
        """Test records persist across store instances."""
        records = _history(days=3)
        first = JsonPayoutStore(tmp_path)
        for record in records:
            first.save_record(record)

        assert JsonPayoutStore(tmp_path).list_records("acct-1") == sorted(records, key=lambda r: r.payout_date)


class TestRegeneration:
    """Tests for ForecastService.regenerate."""

    def test_regenerate_writes_blended_daily_forecasts(
        self, daily_config: AccountConfig, store: InMemoryPayoutStore
    ) -> None:
        """Test a daily account gets one forecast per horizon day, blended per horizon."""
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])

        result = service.regenerate("acct-1", AS_OF)

        assert result.ok
        assert result.records_written == 90
        forecasts = _forecasts(store.list_records("acct-1"))
        assert len(forecasts) == 90
        assert forecasts[0].payout_date == AS_OF + timedelta(days=1)
        assert forecasts[0].id == forecast_record_id("acct-1", AS_OF + timedelta(days=1))
        # History 100/day, trend 200/day, moderate margin
        assert forecasts[0].total_amount == pytest.approx((100 * 0.75 + 200 * 0.25) * 0.92)
        assert forecasts[35].total_amount == pytest.approx((100 * 0.5 + 200 * 0.5) * 0.92)
        assert forecasts[-1].total_amount == pytest.approx((100 * 0.25 + 200 * 0.75) * 0.92)
        assert forecasts[0].modeling_method == "blended_near"

    def test_regeneration_is_idempotent(self, daily_config: AccountConfig, tmp_path: Path) -> None:
        """Test regenerating twice with identical inputs yields byte-identical storage."""
        store = JsonPayoutStore(tmp_path)
        for record in _history():
            store.save_record(record)
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])

        service.regenerate("acct-1", AS_OF)
        first = store.path_for("acct-1").read_bytes()
        service.regenerate("acct-1", AS_OF)
        second = store.path_for("acct-1").read_bytes()

        assert first == second

    def test_estimated_and_confirmed_records_are_untouched(
        self, daily_config: AccountConfig, store: InMemoryPayoutStore
    ) -> None:
        """Test regeneration leaves estimated payouts in place and skips their dates."""
        estimated_date = AS_OF + timedelta(days=3)
        estimated = PayoutRecord(
            id="estimate-1",
            account_id="acct-1",
            payout_date=estimated_date,
            total_amount=321.0,
            status=PayoutStatus.ESTIMATED,
            payout_type="daily",
        )
        store.save_record(estimated)
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])

        service.regenerate("acct-1", AS_OF)

        on_date = [r for r in store.list_records("acct-1") if r.payout_date == estimated_date]
        assert on_date == [estimated]
        assert len(_forecasts(store.list_records("acct-1"))) == 89
        confirmed = [r for r in store.list_records("acct-1") if r.status is PayoutStatus.CONFIRMED]
        assert confirmed == sorted(_history(), key=lambda r: r.payout_date)

    def test_insufficient_data_returns_typed_result(self, daily_config: AccountConfig) -> None:
        """Test two confirmed payouts produce no forecast rather than a guess."""
        store = InMemoryPayoutStore(_history(days=2))
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])

        result = service.regenerate("acct-1", AS_OF)

        assert result.status == "no_forecast"
        assert isinstance(result.error, InsufficientDataError)
        assert result.records_written == 0
        assert _forecasts(store.list_records("acct-1")) == []

    def test_failed_regeneration_keeps_prior_forecasts(
        self, daily_config: AccountConfig, store: InMemoryPayoutStore
    ) -> None:
        """Test a feed failure leaves the previous forecast set intact."""
        ForecastService(StaticFeed(_order_events()), store, configs=[daily_config]).regenerate("acct-1", AS_OF)
        before = store.list_records("acct-1")

        result = ForecastService(FailingFeed(), store, configs=[daily_config]).regenerate(
            "acct-1", AS_OF + timedelta(days=1)
        )

        assert result.status == "failed"
        assert isinstance(result.error, RuntimeError)
        assert store.list_records("acct-1") == before

    def test_failed_json_write_keeps_prior_file(
        self, daily_config: AccountConfig, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test an interrupted file write leaves the previous document and no temp files."""
        store = JsonPayoutStore(tmp_path)
        for record in _history():
            store.save_record(record)
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])
        service.regenerate("acct-1", AS_OF)
        before = store.path_for("acct-1").read_bytes()

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("payout_core.store.os.replace", broken_replace)
        result = service.regenerate("acct-1", AS_OF + timedelta(days=1))

        assert result.status == "failed"
        assert store.path_for("acct-1").read_bytes() == before
        assert sorted(p.name for p in tmp_path.iterdir()) == ["acct-1.json"]

    def test_concurrent_regeneration_raises_conflict(
        self, daily_config: AccountConfig, store: InMemoryPayoutStore
    ) -> None:
        """Test a second regeneration of the same account is refused while one runs."""
        feed = BlockingFeed(_order_events())
        other = AccountConfig(account_id="acct-2", payout_frequency="daily")
        for record in _history("acct-2"):
            store.save_record(record)
        service = ForecastService(feed, store, configs=[daily_config, other])
        results: list = []

        worker = threading.Thread(target=lambda: results.append(service.regenerate("acct-1", AS_OF)))
        worker.start()
        try:
            assert feed.entered.wait(timeout=5)
            with pytest.raises(RegenerationConflictError):
                service.regenerate("acct-1", AS_OF)
        finally:
            feed.release.set()
            worker.join(timeout=5)

        assert results and results[0].ok
        # Other accounts are not blocked
        assert service.regenerate("acct-2", AS_OF).ok


class TestWeightUpdates:
    """Tests for ForecastService.update_weights."""

    def test_valid_weights_regenerate_forecasts(
        self, daily_config: AccountConfig, store: InMemoryPayoutStore
    ) -> None:
        """Test new weights replace every forecasted record and are persisted."""
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])
        service.regenerate("acct-1", AS_OF)

        result = service.update_weights("acct-1", {"near": 100, "mid": 100, "far": 100}, AS_OF)

        assert result.applied
        assert result.regeneration is not None and result.regeneration.ok
        forecasts = _forecasts(store.list_records("acct-1"))
        assert len(forecasts) == 90
        assert all(r.total_amount == pytest.approx(92.0) for r in forecasts)
        assert service.get_config("acct-1").weights.to_dict() == {"near": 100.0, "mid": 100.0, "far": 100.0}

    def test_weight_change_keeps_forecasts_up_to_as_of(
        self, daily_config: AccountConfig, store: InMemoryPayoutStore
    ) -> None:
        """Test forecasts dated on or before the update date keep their values for matching."""
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])
        service.regenerate("acct-1", AS_OF)
        old = {r.payout_date: r for r in _forecasts(store.list_records("acct-1"))}
        update_date = AS_OF + timedelta(days=2)

        result = service.update_weights("acct-1", {"near": 100, "mid": 100, "far": 100}, update_date)

        assert result.applied
        forecasts = {r.payout_date: r for r in _forecasts(store.list_records("acct-1"))}
        for day in (1, 2):
            payout_date = AS_OF + timedelta(days=day)
            assert forecasts[payout_date] == old[payout_date]
        later = update_date + timedelta(days=1)
        assert forecasts[later].total_amount != pytest.approx(old[later].total_amount)

    def test_invalid_weights_change_nothing(
        self, daily_config: AccountConfig, store: InMemoryPayoutStore
    ) -> None:
        """Test an out-of-range weight is rejected before anything is written."""
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])
        service.regenerate("acct-1", AS_OF)
        before = store.list_records("acct-1")

        result = service.update_weights("acct-1", {"near": 120, "mid": 50, "far": 25}, AS_OF)

        assert not result.applied
        assert isinstance(result.error, InvalidConfigError)
        assert result.regeneration is None
        assert store.list_records("acct-1") == before
        assert service.get_config("acct-1") == daily_config


class TestConfirmation:
    """Tests for ForecastService.confirm_payout."""

    def test_confirmation_logs_accuracy_and_supersedes_forecast(
        self, daily_config: AccountConfig, store: InMemoryPayoutStore
    ) -> None:
        """Test confirming a forecast date logs accuracy and replaces the forecast."""
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])
        service.regenerate("acct-1", AS_OF)
        payout_date = AS_OF + timedelta(days=1)
        forecast = next(r for r in store.list_records("acct-1") if r.payout_date == payout_date)

        entry = service.confirm_payout(
            _confirmed("acct-1", payout_date, 100.0), logged_at=datetime(2025, 3, 2, 9)
        )

        assert entry is not None
        assert entry.forecast_id == forecast.id
        assert entry.difference_percentage == pytest.approx((100.0 - forecast.total_amount) / 100.0 * 100)
        on_date = [r for r in store.list_records("acct-1") if r.payout_date == payout_date]
        assert [r.status for r in on_date] == [PayoutStatus.CONFIRMED]
        assert service.tracker.aggregate_accuracy("acct-1") == pytest.approx(100 - abs(entry.difference_percentage))

    def test_confirm_requires_confirmed_status(self, daily_config: AccountConfig, store: InMemoryPayoutStore) -> None:
        """Test only confirmed records are accepted."""
        service = ForecastService(StaticFeed([]), store, configs=[daily_config])
        record = PayoutRecord(
            id="x",
            account_id="acct-1",
            payout_date=AS_OF,
            total_amount=1.0,
            status=PayoutStatus.ESTIMATED,
            payout_type="daily",
        )

        with pytest.raises(ValueError):
            service.confirm_payout(record)


class TestRollover:
    """Tests for rolling over past forecasts without a payout."""

    @pytest.fixture
    def records(self) -> list[PayoutRecord]:
        return [
            _confirmed("acct-1", AS_OF - timedelta(days=10), 900.0),
            _forecast("acct-1", AS_OF - timedelta(days=12), 50.0),
            _forecast("acct-1", AS_OF - timedelta(days=3), 300.0),
            _forecast("acct-1", AS_OF - timedelta(days=1), 200.0),
            _forecast("acct-1", AS_OF, 1000.0),
            _forecast("acct-1", AS_OF + timedelta(days=1), 400.0),
        ]

    def test_unpaid_forecasts_move_to_today(self, records: list[PayoutRecord]) -> None:
        """Test forecasts after the last settlement are added to today's forecast."""
        updated, result = roll_over_records(records, "acct-1", AS_OF)

        assert result.applied
        assert result.rolled_amount == pytest.approx(500.0)
        assert result.target_id == forecast_record_id("acct-1", AS_OF)
        by_date = {r.payout_date: r for r in updated}
        assert by_date[AS_OF].total_amount == pytest.approx(1500.0)
        assert by_date[AS_OF].rolled_over_amount == pytest.approx(500.0)
        assert by_date[AS_OF].status is PayoutStatus.FORECASTED
        assert by_date[AS_OF + timedelta(days=1)].total_amount == 400.0
        for days in (12, 3, 1):
            assert by_date[AS_OF - timedelta(days=days)].status is PayoutStatus.ROLLED_OVER
        assert len(result.rolled_ids) == 3

    def test_missing_target_changes_nothing(self, records: list[PayoutRecord]) -> None:
        """Test funds are not dropped when there is no forecast for today."""
        without_today = [r for r in records if r.payout_date != AS_OF]

        updated, result = roll_over_records(without_today, "acct-1", AS_OF)

        assert not result.applied
        assert result.rolled_amount == pytest.approx(500.0)
        assert updated == without_today

    def test_nothing_to_roll_over(self) -> None:
        """Test an account with no past forecasts is left alone."""
        records = [_forecast("acct-1", AS_OF, 10.0)]

        updated, result = roll_over_records(records, "acct-1", AS_OF)

        assert not result.applied
        assert updated == records

    def test_service_rollover_persists_and_survives_regeneration(
        self, daily_config: AccountConfig, records: list[PayoutRecord], tmp_path: Path
    ) -> None:
        """Test rollover is written to the store and regeneration keeps the receiving forecast."""
        store = JsonPayoutStore(tmp_path)
        older = [_confirmed("acct-1", AS_OF - timedelta(days=d), 900.0) for d in (20, 25, 30)]
        for record in older + records:
            store.save_record(record)
        service = ForecastService(StaticFeed(_order_events()), store, configs=[daily_config])

        result = service.roll_over("acct-1", AS_OF)
        regeneration = service.regenerate("acct-1", AS_OF)

        assert result.applied
        assert regeneration.ok
        today = next(
            r
            for r in JsonPayoutStore(tmp_path).list_records("acct-1")
            if r.payout_date == AS_OF and r.status is PayoutStatus.FORECASTED
        )
        assert today.total_amount == pytest.approx(1500.0)

    def test_late_confirmation_replaces_rolled_over_forecast(self, records: list[PayoutRecord]) -> None:
        """Test an actual payout may still land on a rolled-over date."""
        updated, _ = roll_over_records(records, "acct-1", AS_OF)
        store = InMemoryPayoutStore(updated)
        late_date = AS_OF - timedelta(days=3)

        store.save_record(_confirmed("acct-1", late_date, 310.0))

        on_date = [r for r in store.list_records("acct-1") if r.payout_date == late_date]
        assert [r.status for r in on_date] == [PayoutStatus.CONFIRMED]
