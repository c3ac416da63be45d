"""Settlement period calculation for bi-weekly payout accounts.

Marketplaces on a fixed cadence aggregate eligible funds into one payout per
settlement window. For each window [start, end):

- Order funds unlock ``reserve_lag_days`` after delivery. An order's net
  amount is eligible in the window containing its unlock date (half-open
  intervals, so adjacent windows never double count).
- At the window's evaluation point (its end date), orders already delivered
  but not yet unlocked are held in reserve. An order is never counted as both
  eligible and reserved for the same window.
- Non-order events (fees, refunds, reimbursements, claims, adjustments) post
  to the window containing their timestamp as adjustments.
- The reserve of a window with order activity is never below the account's
  minimum reserve floor.
- Orders unlocking and adjustments posted after the last confirmed
  settlement but before the first window (a settlement that has not synced
  yet) are still owed, so they count in the first window.

    payout = (eligible + prior_balance + adjustments - reserve) * (1 - margin)

The prior balance of window k+1 is the pre-margin carry-forward of window k,
so the safety margin is applied once per statement and never compounds.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, timedelta

from payout_core.events.types import EventType, FinancialEvent
from payout_core.forecasting.config import (
    DEFAULT_RESERVE_LAG_DAYS,
    DEFAULT_RESERVE_MULTIPLIER,
    ESTIMATED_DELIVERY_DAYS,
    SETTLEMENT_PERIOD_DAYS,
)
from payout_core.forecasting.safety import AdjustedAmount, SafetyMargin, apply_safety_margin
from payout_core.forecasting.types import SettlementPeriod

logger = logging.getLogger(__name__)


def settlement_windows(
    first_start: date,
    count: int,
    period_days: int = SETTLEMENT_PERIOD_DAYS,
) -> list[tuple[date, date]]:
    """Build consecutive half-open settlement windows.

    Args:
        first_start: First day of the first window.
        count: Number of windows.
        period_days: Window length in days (default: 14).

    Returns:
        List of (start, end) tuples where end is exclusive and equals the
        next window's start.

    Examples:
        >>> settlement_windows(date(2025, 1, 1), 2)
        [(datetime.date(2025, 1, 1), datetime.date(2025, 1, 15)),
         (datetime.date(2025, 1, 15), datetime.date(2025, 1, 29))]
    """
    if period_days <= 0:
        raise ValueError(f"period_days must be positive, got {period_days}")
    windows = []
    start = first_start
    for _ in range(count):
        end = start + timedelta(days=period_days)
        windows.append((start, end))
        start = end
    return windows


def in_window(d: date, start: date, end: date) -> bool:
    """Half-open membership test: start <= d < end."""
    return start <= d < end


def compute_settlement_payout(
    eligible_amount: float,
    reserve_amount: float,
    prior_balance: float,
    adjustments: float,
    safety_margin: SafetyMargin,
) -> AdjustedAmount:
    """Apply the settlement payout formula for one window.

    Examples:
        >>> compute_settlement_payout(10000, 2500, 0, 0, SafetyMargin.MODERATE).adjusted
        6900.0
    """
    raw = eligible_amount + prior_balance + adjustments - reserve_amount
    return apply_safety_margin(raw, safety_margin)


def calculate_settlement_periods(
    events: Iterable[FinancialEvent],
    windows: list[tuple[date, date]],
    safety_margin: SafetyMargin,
    reserve_lag_days: int = DEFAULT_RESERVE_LAG_DAYS,
    reserve_multiplier: float = DEFAULT_RESERVE_MULTIPLIER,
    opening_balance: float = 0.0,
    estimated_delivery_days: int = ESTIMATED_DELIVERY_DAYS,
    min_reserve_floor: float = 0.0,
    unpaid_since: date | None = None,
) -> list[SettlementPeriod]:
    """Calculate a SettlementPeriod for each window.

    Args:
        events: Normalized financial events.
        windows: Consecutive (start, end) windows, see settlement_windows().
        safety_margin: Margin applied to each window's raw payout.
        reserve_lag_days: Days from delivery to unlock (default: 7).
        reserve_multiplier: Fraction of locked funds held back (default: 1.0).
        opening_balance: Prior balance for the first window.
        estimated_delivery_days: Assumed delivery time for orders without a
            delivery date.
        min_reserve_floor: Minimum reserve held in any window with order
            activity (default: 0, no floor).
        unpaid_since: Date of the last confirmed settlement. Orders
            unlocking and adjustments posted from this date up to the first
            window are counted in the first window.

    Returns:
        One SettlementPeriod per window, in window order.
    """
    events = list(events)
    orders = [e for e in events if e.type is EventType.ORDER]
    others = [e for e in events if e.type is not EventType.ORDER]

    # Precompute delivery and unlock dates once per order
    order_dates = [
        (
            order,
            order.effective_delivery_date(estimated_delivery_days),
            order.unlock_date(reserve_lag_days, estimated_delivery_days),
        )
        for order in orders
    ]

    periods: list[SettlementPeriod] = []
    prior_balance = opening_balance

    for index, (start, end) in enumerate(windows):
        eligible_from = start
        if index == 0 and unpaid_since is not None and unpaid_since < start:
            eligible_from = unpaid_since

        eligible_amount = 0.0
        eligible_ids: list[str] = []
        reserve_amount = 0.0
        reserve_ids: list[str] = []

        for order, delivered, unlocks in order_dates:
            if in_window(unlocks, eligible_from, end):
                eligible_amount += order.net_amount
                eligible_ids.append(order.id)
            elif delivered < end <= unlocks:
                # Delivered before the evaluation point, still locked at it
                reserve_amount += order.net_amount * reserve_multiplier
                reserve_ids.append(order.id)

        if (eligible_ids or reserve_ids) and reserve_amount < min_reserve_floor:
            reserve_amount = min_reserve_floor

        adjustments = 0.0
        adjustment_ids: list[str] = []
        for event in others:
            if in_window(event.event_date, eligible_from, end):
                adjustments += event.net_amount
                adjustment_ids.append(event.id)

        payout = compute_settlement_payout(
            eligible_amount=eligible_amount,
            reserve_amount=reserve_amount,
            prior_balance=prior_balance,
            adjustments=adjustments,
            safety_margin=safety_margin,
        )

        period = SettlementPeriod(
            start_date=start,
            end_date=end,
            eligible_amount=eligible_amount,
            reserve_amount=reserve_amount,
            prior_balance=prior_balance,
            adjustments=adjustments,
            raw_payout=payout.raw,
            payout_estimate=payout.adjusted,
            safety_margin=safety_margin.percent,
            eligible_event_ids=tuple(eligible_ids),
            reserve_event_ids=tuple(reserve_ids),
            adjustment_event_ids=tuple(adjustment_ids),
        )
        periods.append(period)

        logger.debug(
            f"Window {start}..{end}: eligible={eligible_amount:.2f} "
            f"reserve={reserve_amount:.2f} prior={prior_balance:.2f} "
            f"adjustments={adjustments:.2f} payout={payout.adjusted:.2f}"
        )

        prior_balance = period.carry_forward

    return periods
