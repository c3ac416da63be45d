"""Forecast regeneration service.

Ties the pure forecasting pipeline to its collaborators: an event feed that
supplies financial events, a payout store that holds payout records and an
accuracy tracker fed by confirmations.

Example:
    >>> service = ForecastService(feed, InMemoryPayoutStore(), configs=[config])
    >>> result = service.regenerate("acct-1", as_of=date(2025, 1, 1))
    >>> result.records_written
    90
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional, Protocol, Union

from payout_core.accuracy.tracker import AccuracyLogEntry, AccuracyTracker
from payout_core.config import AccountConfig
from payout_core.events.types import FinancialEvent
from payout_core.exceptions import ConfigError, RegenerationConflictError
from payout_core.forecasting.api import (
    STATUS_NO_FORECAST,
    STATUS_OK,
    ForecastResult,
    build_account_forecast,
)
from payout_core.forecasting.blending import ForecastWeightConfig
from payout_core.forecasting.types import PayoutRecord, PayoutStatus
from payout_core.store import PayoutStore, RolloverResult

logger = logging.getLogger(__name__)

STATUS_FAILED = "failed"

DEFAULT_EVENT_LOOKBACK_DAYS = 90


class EventFeed(Protocol):
    """Source of financial events for an account."""

    def fetch_events(
        self, account_id: str, start: date, end: date
    ) -> Iterable[Union[Mapping[str, Any], FinancialEvent]]:
        ...


@dataclass
class RegenerationResult:
    """Outcome of regenerating an account's forecasts.

    Attributes:
        account_id: Account that was regenerated.
        status: "ok", "no_forecast" (engine declined, e.g. too little
            history) or "failed" (feed or store error; prior forecasts kept).
        records_written: Forecast records written to the store.
        skipped_events: Malformed events dropped during normalization.
        error: The error behind a "no_forecast" or "failed" status.
        forecast: The pipeline result, when the pipeline ran.
    """

    account_id: str
    status: str
    records_written: int = 0
    skipped_events: int = 0
    error: Optional[Exception] = None
    forecast: Optional[ForecastResult] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


@dataclass
class WeightUpdateResult:
    """Outcome of a weight configuration change.

    Attributes:
        account_id: Account whose weights changed.
        applied: True if the new weights were persisted.
        regeneration: Regeneration run with the new weights, if it ran.
        error: Validation, conflict or regeneration error when not applied.
    """

    account_id: str
    applied: bool
    regeneration: Optional[RegenerationResult] = None
    error: Optional[Exception] = None


class ForecastService:
    """Regenerates forecasts and records confirmations for many accounts.

    Regeneration of one account is never concurrent with another
    regeneration of the same account; a second caller gets
    RegenerationConflictError instead of waiting. Different accounts share
    no mutable state besides the lock table.
    """

    def __init__(
        self,
        event_feed: EventFeed,
        store: PayoutStore,
        configs: Iterable[AccountConfig] = (),
        tracker: Optional[AccuracyTracker] = None,
        event_lookback_days: int = DEFAULT_EVENT_LOOKBACK_DAYS,
    ) -> None:
        self.event_feed = event_feed
        self.store = store
        self.tracker = tracker if tracker is not None else AccuracyTracker()
        self.event_lookback_days = event_lookback_days
        self._configs: dict[str, AccountConfig] = {c.account_id: c for c in configs}
        self._configs_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def register_account(self, config: AccountConfig) -> None:
        with self._configs_lock:
            self._configs[config.account_id] = config

    def get_config(self, account_id: str) -> AccountConfig:
        """Current configuration for an account.

        Raises:
            ConfigError: If the account is not registered.
        """
        with self._configs_lock:
            config = self._configs.get(account_id)
        if config is None:
            raise ConfigError(f"No configuration registered for account '{account_id}'")
        return config

    def _account_lock(self, account_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(account_id, threading.Lock())

    def regenerate(
        self,
        account_id: str,
        as_of: date,
        config: Optional[AccountConfig] = None,
    ) -> RegenerationResult:
        """Recompute and atomically replace an account's forecasted records.

        Estimated and confirmed records are never touched. Forecasts dated
        after ``as_of`` are replaced as one set; on failure the previous set
        stays in place.

        Args:
            account_id: Account to regenerate.
            as_of: Evaluation date.
            config: Configuration to use instead of the registered one.

        Returns:
            RegenerationResult

        Raises:
            RegenerationConflictError: If a regeneration for this account is
                already running.
            ConfigError: If no configuration is registered or given.
        """
        if config is None:
            config = self.get_config(account_id)

        lock = self._account_lock(account_id)
        if not lock.acquire(blocking=False):
            logger.warning(f"Regeneration already running for {account_id}")
            raise RegenerationConflictError(account_id)
        try:
            return self._regenerate_locked(config, as_of)
        finally:
            lock.release()

    def _regenerate_locked(self, config: AccountConfig, as_of: date) -> RegenerationResult:
        account_id = config.account_id
        try:
            events = list(
                self.event_feed.fetch_events(
                    account_id, as_of - timedelta(days=self.event_lookback_days), as_of
                )
            )
            history = self.store.list_records(account_id)
            forecast = build_account_forecast(config, events, history, as_of=as_of)

            # Only forecasts after as_of are invalidated; earlier ones stay so
            # confirmations still match what was shown. No forecast replaces
            # the range with an empty set.
            written = self.store.replace_forecasts(
                account_id, as_of + timedelta(days=1), date.max, forecast.records
            )
        except Exception as e:
            logger.exception(f"Regeneration failed for {account_id}: {e}")
            return RegenerationResult(account_id=account_id, status=STATUS_FAILED, error=e)

        if forecast.status == STATUS_NO_FORECAST:
            logger.warning(f"{account_id}: no forecast available ({forecast.error})")

        logger.info(f"{account_id}: wrote {written} forecast records as of {as_of}")
        return RegenerationResult(
            account_id=account_id,
            status=forecast.status,
            records_written=written,
            skipped_events=forecast.skipped_events,
            error=forecast.error,
            forecast=forecast,
        )

    def roll_over(self, account_id: str, as_of: date) -> RolloverResult:
        """Roll past unmatched forecasts into the forecast dated ``as_of``.

        Run before regenerate() so the receiving forecast, which regeneration
        never replaces, carries the unpaid amount.

        Raises:
            RegenerationConflictError: If a regeneration for this account is
                already running.
        """
        lock = self._account_lock(account_id)
        if not lock.acquire(blocking=False):
            logger.warning(f"Regeneration already running for {account_id}")
            raise RegenerationConflictError(account_id)
        try:
            result = self.store.roll_over(account_id, as_of)
        finally:
            lock.release()

        if result.applied:
            logger.info(f"{account_id}: {result.message}")
        elif result.rolled_amount > 0:
            logger.warning(f"{account_id}: {result.message}")
        else:
            logger.debug(f"{account_id}: {result.message}")
        return result

    def update_weights(
        self,
        account_id: str,
        weights: Union[ForecastWeightConfig, Mapping[str, Any]],
        as_of: date,
    ) -> WeightUpdateResult:
        """Change an account's blending weights and regenerate synchronously.

        The weights are validated first; an invalid configuration leaves the
        stored forecasts and the current weights untouched. The new weights
        are persisted only once regeneration has completed.
        """
        try:
            if not isinstance(weights, ForecastWeightConfig):
                weights = ForecastWeightConfig.from_mapping(weights)
            new_config = self.get_config(account_id).with_weights(weights)
        except ConfigError as e:
            logger.warning(f"Rejected weight update for {account_id}: {e}")
            return WeightUpdateResult(account_id=account_id, applied=False, error=e)

        try:
            regeneration = self.regenerate(account_id, as_of, config=new_config)
        except RegenerationConflictError as e:
            return WeightUpdateResult(account_id=account_id, applied=False, error=e)

        if regeneration.status == STATUS_FAILED:
            return WeightUpdateResult(
                account_id=account_id,
                applied=False,
                regeneration=regeneration,
                error=regeneration.error,
            )

        self.register_account(new_config)
        logger.info(f"Updated weights for {account_id}: {weights.to_dict()}")
        return WeightUpdateResult(account_id=account_id, applied=True, regeneration=regeneration)

    def confirm_payout(
        self,
        record: PayoutRecord,
        logged_at: Optional[datetime] = None,
    ) -> Optional[AccuracyLogEntry]:
        """Store a confirmed payout and log the accuracy of its forecast.

        Returns:
            The accuracy entry, or None if nothing was logged.

        Raises:
            ValueError: If the record is not confirmed.
        """
        if record.status is not PayoutStatus.CONFIRMED:
            raise ValueError(f"Record {record.id} is {record.status.value}, not confirmed")

        candidates = self.store.list_records(record.account_id)
        self.store.save_record(record)
        return self.tracker.record_confirmation(record, candidates, logged_at=logged_at)
