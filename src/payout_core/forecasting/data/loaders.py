"""Data loading utilities for the forecasting pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd

from payout_core.exceptions import DataQualityError
from payout_core.forecasting.types import PayoutRecord, PayoutStatus

EVENT_COLUMNS = ["timestamp", "type"]
PAYOUT_COLUMNS = ["payout_date", "total_amount", "status"]


def _read_csv(csv_path: Union[str, Path], required: list[str], label: str) -> pd.DataFrame:
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"{label} data not found at {csv_path}")

    df = pd.read_csv(csv_path)
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise DataQualityError(f"{label} file {csv_path} is missing columns: {missing}")
    return df


def load_events(csv_path: Union[str, Path]) -> list[dict[str, Any]]:
    """Load raw financial events from a CSV file.

    Values are left as read; validation happens in the event normalizer so
    malformed rows are skipped and counted there. Empty cells become None.

    Args:
        csv_path: Path to an events CSV with at least 'timestamp', 'type' and
            'gross_amount' (or 'amount') columns

    Returns:
        List of raw event mappings, one per row

    Raises:
        FileNotFoundError: If the CSV file does not exist
        DataQualityError: If required columns are missing
    """
    df = _read_csv(csv_path, EVENT_COLUMNS, "Events")
    if "gross_amount" not in df.columns and "amount" not in df.columns:
        raise DataQualityError(f"Events file {csv_path} needs a 'gross_amount' or 'amount' column")

    df = df.astype(object).where(df.notna(), None)
    return df.to_dict(orient="records")


def load_payouts(
    csv_path: Union[str, Path],
    account_id: Optional[str] = None,
    payout_type: str = "bi-weekly",
) -> list[PayoutRecord]:
    """Load payout history from a CSV file.

    Args:
        csv_path: Path to a payouts CSV with 'payout_date', 'total_amount'
            and 'status' columns. Optional: 'id', 'account_id', 'payout_type'.
        account_id: Account to assign when the file has no account_id column.
            When both are present, rows for other accounts are dropped.
        payout_type: Default payout type for rows without one

    Returns:
        PayoutRecords sorted by payout date

    Raises:
        FileNotFoundError: If the CSV file does not exist
        DataQualityError: If required columns are missing or a row is invalid
    """
    df = _read_csv(csv_path, PAYOUT_COLUMNS, "Payouts")
    if "account_id" not in df.columns:
        if account_id is None:
            raise DataQualityError(
                f"Payouts file {csv_path} has no account_id column and no account was given"
            )
        df["account_id"] = account_id
    elif account_id is not None:
        df = df[df["account_id"].astype(str) == account_id]

    df["payout_date"] = pd.to_datetime(df["payout_date"], errors="coerce")
    df["total_amount"] = pd.to_numeric(df["total_amount"], errors="coerce")
    bad = df["payout_date"].isna() | df["total_amount"].isna()
    if bad.any():
        raise DataQualityError(
            f"Payouts file {csv_path} has {int(bad.sum())} rows with invalid date or amount"
        )

    df = df.sort_values("payout_date", kind="mergesort")
    records = []
    for row in df.itertuples(index=False):
        row_dict = row._asdict()
        payout_date = row_dict["payout_date"].date()
        try:
            status = PayoutStatus(str(row_dict["status"]).strip().lower())
        except ValueError as e:
            raise DataQualityError(f"Unknown payout status: {row_dict['status']!r}") from e
        row_type = row_dict.get("payout_type")
        record_id = row_dict.get("id")
        if record_id is None or pd.isna(record_id):
            record_id = f"{status.value}_{row_dict['account_id']}_{payout_date.isoformat()}"
        records.append(
            PayoutRecord(
                id=str(record_id),
                account_id=str(row_dict["account_id"]),
                payout_date=payout_date,
                total_amount=float(row_dict["total_amount"]),
                status=status,
                payout_type=str(row_type) if pd.notna(row_type) else payout_type,
            )
        )
    return records
