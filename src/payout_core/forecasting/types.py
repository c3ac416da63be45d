"""Shared types for forecasting models and payout records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class PayoutFrequency(str, Enum):
    """Marketplace settlement cadence for an account."""

    BI_WEEKLY = "bi-weekly"
    DAILY = "daily"


class ForecastMethod(str, Enum):
    """Model family used for an account.

    AUTO picks the settlement model for bi-weekly accounts and the
    statistical model for daily ones. SEASONALITY projects monthly payouts
    from recent payouts and calendar multipliers.
    """

    AUTO = "auto"
    SEASONALITY = "seasonality"


class PayoutStatus(str, Enum):
    """Lifecycle of a payout record.

    Progression is one-way: forecasted -> estimated -> confirmed. A
    forecast whose date passed without a payout is rolled_over: its amount
    has moved to a later forecast, and only an actual payout can replace it.
    """

    FORECASTED = "forecasted"
    ROLLED_OVER = "rolled_over"
    ESTIMATED = "estimated"
    CONFIRMED = "confirmed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_settled(self) -> bool:
        """True for statuses backed by marketplace data."""
        return self in (PayoutStatus.ESTIMATED, PayoutStatus.CONFIRMED)

    def can_become(self, other: PayoutStatus) -> bool:
        """True if a record in this status may be replaced by one in ``other``."""
        return other.rank >= self.rank


_STATUS_RANK = {
    PayoutStatus.FORECASTED: 0,
    PayoutStatus.ROLLED_OVER: 1,
    PayoutStatus.ESTIMATED: 2,
    PayoutStatus.CONFIRMED: 3,
}


@dataclass(frozen=True)
class PayoutRecord:
    """A payout for one account on one date.

    Attributes:
        id: Stable identifier. Forecast ids are derived from account and
            date so identical inputs regenerate identical records.
        account_id: Owning account.
        payout_date: Date the payout lands.
        total_amount: Amount shown to the user (after safety margin,
            floored at zero for forecasts).
        status: forecasted, rolled_over, estimated or confirmed.
        payout_type: Cadence of the account ("bi-weekly" or "daily").
        orders_total: Order revenue attributed to the payout.
        fees_total: Fees attributed to the payout.
        refunds_total: Refunds attributed to the payout.
        raw_amount: Pre-margin value, unclamped.
        uncertainty: Half-width of the uncertainty band, if the model
            provides one.
        modeling_method: Short identifier of the producing model.
        generated_at: Evaluation time of the run that produced the record.
        rolled_over_amount: Amount moved into this forecast from earlier
            forecasts that passed without a payout.
    """

    id: str
    account_id: str
    payout_date: date
    total_amount: float
    status: PayoutStatus
    payout_type: str
    orders_total: float = 0.0
    fees_total: float = 0.0
    refunds_total: float = 0.0
    raw_amount: float | None = None
    uncertainty: float | None = None
    modeling_method: str | None = None
    generated_at: datetime | None = None
    rolled_over_amount: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert record to a JSON-friendly dictionary."""
        data = asdict(self)
        data["payout_date"] = self.payout_date.isoformat()
        data["status"] = self.status.value
        data["generated_at"] = self.generated_at.isoformat() if self.generated_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PayoutRecord:
        """Create a record from the dictionary produced by to_dict()."""
        values = dict(data)
        values["payout_date"] = date.fromisoformat(values["payout_date"])
        values["status"] = PayoutStatus(values["status"])
        generated_at = values.get("generated_at")
        values["generated_at"] = datetime.fromisoformat(generated_at) if generated_at else None
        return cls(**values)


def forecast_record_id(account_id: str, payout_date: date) -> str:
    """Deterministic id for a forecasted record."""
    return f"forecast_{account_id}_{payout_date.isoformat()}"


@dataclass(frozen=True)
class SettlementPeriod:
    """Forecast for one fixed-cadence settlement window.

    Superseded, never mutated, when a later forecast recomputes the window.

    Attributes:
        start_date: First day of the window (inclusive).
        end_date: Settlement date; end of the window (exclusive) and the
            evaluation point for reserves.
        eligible_amount: Net amounts unlocking inside [start_date, end_date).
        reserve_amount: Net amounts delivered but still locked at end_date,
            times the reserve multiplier.
        prior_balance: Unadjusted carry-forward from the previous window.
        adjustments: Non-order events posted inside the window.
        raw_payout: eligible + prior + adjustments - reserve, before margin.
        payout_estimate: raw_payout after the safety margin, unclamped.
        safety_margin: Margin fraction applied to raw_payout.
        eligible_event_ids: Events counted in eligible_amount.
        reserve_event_ids: Events counted in reserve_amount.
    """

    start_date: date
    end_date: date
    eligible_amount: float
    reserve_amount: float
    prior_balance: float
    adjustments: float
    raw_payout: float
    payout_estimate: float
    safety_margin: float
    eligible_event_ids: tuple[str, ...] = ()
    reserve_event_ids: tuple[str, ...] = ()
    adjustment_event_ids: tuple[str, ...] = ()

    @property
    def display_payout(self) -> float:
        """Payout floored at zero for presentation."""
        return max(0.0, self.payout_estimate)

    @property
    def carry_forward(self) -> float:
        """Balance carried into the next window, before any safety margin.

        A positive raw payout is paid out in full; a negative one remains as
        a debit balance on the account.
        """
        return min(0.0, self.raw_payout)

    @property
    def has_activity(self) -> bool:
        return bool(self.eligible_event_ids or self.reserve_event_ids or self.adjustment_event_ids)


@dataclass(frozen=True)
class ModelDebugInfo:
    """Generic container for model-specific debug information.

    Attributes:
        model_name: Short identifier for the model, e.g. "statistical_daily".
        version: Optional version string if model behavior changes over time.
        data: Arbitrary model-specific payload (dict of JSON-like values).

    Note:
        This dataclass is frozen to prevent accidental mutations after creation.
        The data dict should be populated at creation time.

    """

    model_name: str
    version: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

