"""Payout record storage.

Stores hold every PayoutRecord of an account, whatever its status. The
forecast set for an account is replaced as a unit: the new record list is
built completely and then swapped in, so a failure part-way leaves the
previous forecasts intact.

Two rules hold for every store:

- status only moves forward (forecasted -> estimated -> confirmed); a
  record is never replaced by one of lower rank,
- forecasts are never written for a date that already has an estimated,
  confirmed or rolled-over payout.

Forecasts whose date has passed without a payout are rolled over: marked
rolled_over, with the amount of those dated after the last confirmed
settlement added to the forecast for the evaluation date.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Optional, Protocol, Union

from payout_core.exceptions import DataQualityError
from payout_core.forecasting.types import PayoutRecord, PayoutStatus

logger = logging.getLogger(__name__)


class PayoutStore(Protocol):
    """Persistence seam for payout records."""

    def list_records(self, account_id: str) -> list[PayoutRecord]:
        ...

    def replace_forecasts(
        self,
        account_id: str,
        start: date,
        end: date,
        records: Iterable[PayoutRecord],
    ) -> int:
        ...

    def save_record(self, record: PayoutRecord) -> None:
        ...

    def roll_over(self, account_id: str, as_of: date) -> RolloverResult:
        ...


def _sort_key(record: PayoutRecord) -> tuple:
    return (record.payout_date, record.status.rank, record.id)


def merge_forecasts(
    existing: Iterable[PayoutRecord],
    account_id: str,
    start: date,
    end: date,
    records: Iterable[PayoutRecord],
) -> tuple[list[PayoutRecord], int]:
    """Build the account's record list with its forecast set replaced.

    Forecasted records dated within [start, end] are dropped and the new
    forecasts inserted, except on dates that already have an estimated or
    confirmed record.

    Returns:
        Tuple of (new record list, number of forecasts inserted)

    Raises:
        ValueError: If a new record is not a forecast for account_id
    """
    new_records = list(records)
    for record in new_records:
        if record.account_id != account_id:
            raise ValueError(
                f"Record {record.id} belongs to {record.account_id}, not {account_id}"
            )
        if record.status is not PayoutStatus.FORECASTED:
            raise ValueError(f"Record {record.id} is {record.status.value}, not forecasted")

    kept = [
        r
        for r in existing
        if not (r.status is PayoutStatus.FORECASTED and start <= r.payout_date <= end)
    ]
    locked = {r.payout_date for r in kept if r.status is not PayoutStatus.FORECASTED}
    inserted = [r for r in new_records if r.payout_date not in locked]
    if len(inserted) < len(new_records):
        logger.debug(
            f"{account_id}: skipped {len(new_records) - len(inserted)} forecasts on settled dates"
        )
    return sorted(kept + inserted, key=_sort_key), len(inserted)


def merge_record(existing: Iterable[PayoutRecord], record: PayoutRecord) -> list[PayoutRecord]:
    """Build the account's record list with ``record`` saved.

    The new record supersedes records of equal or lower rank on the same
    date.

    Raises:
        ValueError: If a record of higher rank already exists on that date
    """
    existing = list(existing)
    same_day = [r for r in existing if r.payout_date == record.payout_date]
    for current in same_day:
        if not current.status.can_become(record.status):
            raise ValueError(
                f"Cannot replace {current.status.value} payout on {record.payout_date} "
                f"with a {record.status.value} one"
            )
    kept = [r for r in existing if r.payout_date != record.payout_date]
    return sorted(kept + [record], key=_sort_key)


@dataclass(frozen=True)
class RolloverResult:
    """Outcome of rolling over past forecasts.

    Attributes:
        account_id: Account that was processed.
        as_of: Evaluation date; forecasts dated before it were considered.
        applied: True if the store was changed.
        rolled_amount: Amount added to the target forecast, or left
            unplaced when not applied.
        rolled_ids: Ids of the forecasts marked rolled_over.
        target_id: Forecast that received the amount, if any.
        message: Short human-readable summary.
    """

    account_id: str
    as_of: date
    applied: bool
    rolled_amount: float = 0.0
    rolled_ids: tuple[str, ...] = ()
    target_id: Optional[str] = None
    message: str = ""


def roll_over_records(
    existing: Iterable[PayoutRecord], account_id: str, as_of: date
) -> tuple[list[PayoutRecord], RolloverResult]:
    """Build the account's record list with past forecasts rolled over.

    Every forecast dated before ``as_of`` is marked rolled_over. The amounts
    of those dated after the last confirmed settlement were never paid and
    are added to the forecast dated ``as_of``; earlier ones are assumed
    covered by that settlement. Without a forecast dated ``as_of`` nothing
    is changed.

    Returns:
        Tuple of (new record list, RolloverResult)
    """
    existing = list(existing)
    confirmed = [r.payout_date for r in existing if r.status is PayoutStatus.CONFIRMED]
    last_confirmed = max(confirmed) if confirmed else date.min

    past = [
        r for r in existing if r.status is PayoutStatus.FORECASTED and r.payout_date < as_of
    ]
    if not past:
        return existing, RolloverResult(
            account_id, as_of, applied=False, message="No past forecasts to process"
        )

    amount = sum(r.total_amount for r in past if r.payout_date > last_confirmed)
    target = next(
        (
            r
            for r in existing
            if r.status is PayoutStatus.FORECASTED and r.payout_date == as_of
        ),
        None,
    )
    if target is None:
        message = (
            "No forecast for the evaluation date to receive rolled over funds"
            if amount > 0
            else "No forecast for the evaluation date, nothing changed"
        )
        return existing, RolloverResult(
            account_id, as_of, applied=False, rolled_amount=amount, message=message
        )

    rolled_ids = {r.id for r in past}
    updated = []
    for record in existing:
        if record.id in rolled_ids:
            record = replace(record, status=PayoutStatus.ROLLED_OVER)
        elif record is target and amount > 0:
            record = replace(
                record,
                total_amount=record.total_amount + amount,
                rolled_over_amount=record.rolled_over_amount + amount,
            )
        updated.append(record)

    return sorted(updated, key=_sort_key), RolloverResult(
        account_id,
        as_of,
        applied=True,
        rolled_amount=amount,
        rolled_ids=tuple(sorted(rolled_ids)),
        target_id=target.id,
        message=f"Carried forward {amount:.2f}, rolled over {len(rolled_ids)} past forecasts",
    )


class InMemoryPayoutStore:
    """Thread-safe in-memory store."""

    def __init__(self, records: Iterable[PayoutRecord] = ()) -> None:
        self._records: dict[str, list[PayoutRecord]] = {}
        self._lock = threading.Lock()
        for record in records:
            self.save_record(record)

    def list_records(self, account_id: str) -> list[PayoutRecord]:
        with self._lock:
            return list(self._records.get(account_id, []))

    def replace_forecasts(
        self,
        account_id: str,
        start: date,
        end: date,
        records: Iterable[PayoutRecord],
    ) -> int:
        with self._lock:
            merged, inserted = merge_forecasts(
                self._records.get(account_id, []), account_id, start, end, records
            )
            self._records[account_id] = merged
        return inserted

    def save_record(self, record: PayoutRecord) -> None:
        with self._lock:
            self._records[record.account_id] = merge_record(
                self._records.get(record.account_id, []), record
            )

    def roll_over(self, account_id: str, as_of: date) -> RolloverResult:
        with self._lock:
            records, result = roll_over_records(self._records.get(account_id, []), account_id, as_of)
            if result.applied:
                self._records[account_id] = records
        return result


class JsonPayoutStore:
    """File-backed store, one JSON document per account.

    Files are rewritten through a temporary file and ``os.replace`` so a
    reader never sees a partially written document.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    def path_for(self, account_id: str) -> Path:
        return self.root / f"{account_id}.json"

    def _read(self, account_id: str) -> list[PayoutRecord]:
        path = self.path_for(account_id)
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return [PayoutRecord.from_dict(item) for item in data["records"]]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise DataQualityError(f"Payout store file {path} is corrupted: {e}") from e

    def _write(self, account_id: str, records: list[PayoutRecord]) -> None:
        path = self.path_for(account_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "account_id": account_id,
            "records": [r.to_dict() for r in records],
        }
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{account_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def list_records(self, account_id: str) -> list[PayoutRecord]:
        with self._lock:
            return self._read(account_id)

    def replace_forecasts(
        self,
        account_id: str,
        start: date,
        end: date,
        records: Iterable[PayoutRecord],
    ) -> int:
        with self._lock:
            merged, inserted = merge_forecasts(
                self._read(account_id), account_id, start, end, records
            )
            self._write(account_id, merged)
        return inserted

    def save_record(self, record: PayoutRecord) -> None:
        with self._lock:
            merged = merge_record(self._read(record.account_id), record)
            self._write(record.account_id, merged)

    def roll_over(self, account_id: str, as_of: date) -> RolloverResult:
        with self._lock:
            records, result = roll_over_records(self._read(account_id), account_id, as_of)
            if result.applied:
                self._write(account_id, records)
        return result
