"""Typed financial events consumed by the forecasting engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum


class EventType(str, Enum):
    """Canonical event categories."""

    ORDER = "Order"
    REFUND = "Refund"
    REIMBURSEMENT = "Reimbursement"
    SERVICE_FEE = "ServiceFee"
    ADJUSTMENT = "Adjustment"
    GUARANTEE_CLAIM = "GuaranteeClaim"
    CHARGEBACK = "Chargeback"
    OTHER = "Other"


@dataclass(frozen=True)
class FinancialEvent:
    """A normalized marketplace financial event.

    Immutable once ingested. ``net_amount`` is derived at normalization time
    and never recomputed afterwards.

    Attributes:
        id: Upstream event identifier.
        timestamp: When the event was posted by the marketplace.
        type: Canonical category.
        gross_amount: Amount before fees and costs.
        net_amount: Amount after fees, costs and (for orders) risk rates.
        fees: Marketplace fees deducted from the gross amount.
        shipping_cost: Shipping cost deducted from the gross amount.
        ads_cost: Advertising cost deducted from the gross amount.
        order_id: Marketplace order reference, if any.
        delivery_date: Date the order reached the buyer, if known.
        raw_type: The marketplace-specific type string as received.
    """

    id: str
    timestamp: datetime
    type: EventType
    gross_amount: float
    net_amount: float
    fees: float = 0.0
    shipping_cost: float = 0.0
    ads_cost: float = 0.0
    order_id: str | None = None
    delivery_date: date | None = None
    raw_type: str | None = None

    @property
    def event_date(self) -> date:
        return self.timestamp.date()

    def effective_delivery_date(self, estimated_delivery_days: int = 0) -> date:
        """Delivery date, or the estimate for orders that have none yet."""
        if self.delivery_date is not None:
            return self.delivery_date
        return self.event_date + timedelta(days=estimated_delivery_days)

    def unlock_date(self, reserve_lag_days: int, estimated_delivery_days: int = 0) -> date:
        """Date the event's net amount becomes eligible for payout.

        Always ``delivery_date + reserve_lag_days``.
        """
        return self.effective_delivery_date(estimated_delivery_days) + timedelta(
            days=reserve_lag_days
        )
