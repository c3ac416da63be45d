"""Tests for the bi-weekly settlement period calculator."""

from datetime import date, datetime, timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payout_core.events.types import EventType, FinancialEvent
from payout_core.forecasting.safety import SafetyMargin
from payout_core.forecasting.settlement import (
    calculate_settlement_periods,
    compute_settlement_payout,
    in_window,
    settlement_windows,
)


def _order(event_id: str, net: float, delivered: date, posted: date | None = None) -> FinancialEvent:
    posted = posted or delivered - timedelta(days=2)
    return FinancialEvent(
        id=event_id,
        timestamp=datetime(posted.year, posted.month, posted.day, 9, 0),
        type=EventType.ORDER,
        gross_amount=net,
        net_amount=net,
        delivery_date=delivered,
    )


def _event(event_id: str, event_type: EventType, net: float, posted: date) -> FinancialEvent:
    return FinancialEvent(
        id=event_id,
        timestamp=datetime(posted.year, posted.month, posted.day, 9, 0),
        type=event_type,
        gross_amount=net,
        net_amount=net,
    )


def test_compute_settlement_payout_example() -> None:
    """Test (eligible - reserve) x (1 - 8%) for a window with no prior balance."""
    payout = compute_settlement_payout(10000, 2500, 0, 0, SafetyMargin.MODERATE)

    assert payout.raw == pytest.approx(7500.0)
    assert payout.adjusted == pytest.approx(6900.0)


def test_settlement_windows_are_contiguous_half_open() -> None:
    """Test each window ends where the next begins."""
    windows = settlement_windows(date(2025, 1, 1), 3)

    assert windows == [
        (date(2025, 1, 1), date(2025, 1, 15)),
        (date(2025, 1, 15), date(2025, 1, 29)),
        (date(2025, 1, 29), date(2025, 2, 12)),
    ]
    assert in_window(date(2025, 1, 1), *windows[0])
    assert not in_window(date(2025, 1, 15), *windows[0])
    assert in_window(date(2025, 1, 15), *windows[1])


def test_settlement_windows_rejects_non_positive_period() -> None:
    """Test a zero-length period is rejected."""
    with pytest.raises(ValueError):
        settlement_windows(date(2025, 1, 1), 2, period_days=0)


def test_eligible_and_reserve_from_events() -> None:
    """Test eligible and reserved amounts are derived from unlock dates."""
    events = [
        # Unlocks Jan 4: eligible in the first window
        _order("unlocked", 10000.0, delivered=date(2024, 12, 28)),
        # Delivered Jan 10, unlocks Jan 17: reserved at Jan 15
        _order("locked", 2500.0, delivered=date(2025, 1, 10)),
    ]
    windows = settlement_windows(date(2025, 1, 1), 2)

    periods = calculate_settlement_periods(events, windows, SafetyMargin.MODERATE)

    first, second = periods
    assert first.eligible_amount == pytest.approx(10000.0)
    assert first.reserve_amount == pytest.approx(2500.0)
    assert first.payout_estimate == pytest.approx(6900.0)
    assert first.eligible_event_ids == ("unlocked",)
    assert first.reserve_event_ids == ("locked",)

    # The reserved order unlocks in the next window
    assert second.eligible_amount == pytest.approx(2500.0)
    assert second.reserve_amount == 0.0
    assert second.prior_balance == 0.0
    assert second.payout_estimate == pytest.approx(2300.0)


def test_reserve_multiplier_scales_locked_funds() -> None:
    """Test only the configured fraction of locked funds is held back."""
    events = [_order("locked", 1000.0, delivered=date(2025, 1, 12))]
    windows = settlement_windows(date(2025, 1, 1), 1)

    (period,) = calculate_settlement_periods(
        events, windows, SafetyMargin.AGGRESSIVE, reserve_multiplier=0.5
    )

    assert period.reserve_amount == pytest.approx(500.0)
    assert period.raw_payout == pytest.approx(-500.0)


def test_order_without_delivery_date_uses_estimate() -> None:
    """Test undated orders are assumed delivered after the estimated delivery days."""
    event = FinancialEvent(
        id="undelivered",
        timestamp=datetime(2025, 1, 1, 10, 0),
        type=EventType.ORDER,
        gross_amount=300.0,
        net_amount=300.0,
    )
    windows = settlement_windows(date(2025, 1, 1), 2, period_days=7)

    periods = calculate_settlement_periods(
        [event], windows, SafetyMargin.MODERATE, reserve_lag_days=7, estimated_delivery_days=3
    )

    # Delivered Jan 4, unlocks Jan 11
    assert periods[0].reserve_amount == pytest.approx(300.0)
    assert periods[1].eligible_amount == pytest.approx(300.0)


def test_negative_payout_carries_forward_without_margin() -> None:
    """Test a negative window is shown as zero and carried forward unadjusted."""
    events = [
        _event("refund", EventType.REFUND, -1000.0, date(2025, 1, 5)),
        _order("later", 3000.0, delivered=date(2025, 1, 10)),
    ]
    windows = settlement_windows(date(2025, 1, 1), 2)

    first, second = calculate_settlement_periods(
        events, windows, SafetyMargin.MODERATE, reserve_multiplier=0.0
    )

    assert first.adjustments == pytest.approx(-1000.0)
    assert first.payout_estimate == pytest.approx(-920.0)
    assert first.display_payout == 0.0
    assert first.carry_forward == pytest.approx(-1000.0)

    assert second.prior_balance == pytest.approx(-1000.0)
    assert second.raw_payout == pytest.approx(2000.0)
    assert second.payout_estimate == pytest.approx(1840.0)


def test_empty_windows_yield_zero() -> None:
    """Test windows with no events produce zero amounts, not errors."""
    periods = calculate_settlement_periods([], settlement_windows(date(2025, 1, 1), 3), SafetyMargin.MODERATE)

    assert len(periods) == 3
    for period in periods:
        assert period.eligible_amount == 0.0
        assert period.reserve_amount == 0.0
        assert period.display_payout == 0.0
        assert not period.has_activity


def test_opening_balance_feeds_first_window() -> None:
    """Test an opening balance is used as the first window's prior balance."""
    (period,) = calculate_settlement_periods(
        [], settlement_windows(date(2025, 1, 1), 1), SafetyMargin.AGGRESSIVE, opening_balance=100.0
    )

    assert period.prior_balance == 100.0
    assert period.payout_estimate == pytest.approx(97.0)


def test_reserve_floor_applies_to_windows_with_orders() -> None:
    """Test the minimum reserve floor raises a small reserve but leaves empty windows alone."""
    events = [
        _order("unlocked", 10000.0, delivered=date(2024, 12, 28)),
        _order("locked", 200.0, delivered=date(2025, 1, 10)),
    ]
    windows = settlement_windows(date(2025, 1, 1), 3)

    first, second, third = calculate_settlement_periods(
        events, windows, SafetyMargin.MODERATE, min_reserve_floor=1000.0
    )

    assert first.reserve_amount == pytest.approx(1000.0)
    assert first.raw_payout == pytest.approx(9000.0)
    assert second.reserve_amount == pytest.approx(1000.0)
    assert third.reserve_amount == 0.0


def test_default_reserve_floor_keeps_example_payout() -> None:
    """Test the default floor of zero leaves the reserve as computed."""
    events = [
        _order("unlocked", 10000.0, delivered=date(2024, 12, 28)),
        _order("locked", 2500.0, delivered=date(2025, 1, 10)),
    ]

    first, _ = calculate_settlement_periods(events, settlement_windows(date(2025, 1, 1), 2), SafetyMargin.MODERATE)

    assert first.reserve_amount == pytest.approx(2500.0)
    assert first.payout_estimate == pytest.approx(6900.0)


def test_unpaid_orders_before_first_window_count_in_first_window() -> None:
    """Test orders unlocked since the last settlement are not lost when windows start later."""
    events = [
        # Unlocks Jan 17, after the Jan 1 settlement and before the Jan 29 window
        _order("owed", 5000.0, delivered=date(2025, 1, 10)),
        # Unlocked Dec 30, paid by the Jan 1 settlement
        _order("paid", 700.0, delivered=date(2024, 12, 23)),
        _event("fee", EventType.SERVICE_FEE, -40.0, date(2025, 1, 20)),
    ]
    windows = settlement_windows(date(2025, 1, 29), 2)

    first, second = calculate_settlement_periods(
        events, windows, SafetyMargin.MODERATE, unpaid_since=date(2025, 1, 1)
    )

    assert first.eligible_event_ids == ("owed",)
    assert first.eligible_amount == pytest.approx(5000.0)
    assert first.adjustment_event_ids == ("fee",)
    assert second.eligible_event_ids == ()


_delivery_dates = st.dates(min_value=date(2024, 12, 1), max_value=date(2025, 3, 31))


@settings(max_examples=50, deadline=None)
@given(delivered=_delivery_dates, lag=st.integers(min_value=0, max_value=30))
def test_unlock_date_is_delivery_plus_lag(delivered: date, lag: int) -> None:
    """Test unlock date always equals delivery date plus the reserve lag."""
    event = _order("o", 10.0, delivered=delivered)

    assert event.unlock_date(lag) == delivered + timedelta(days=lag)


@settings(max_examples=50, deadline=None)
@given(
    deliveries=st.lists(_delivery_dates, min_size=1, max_size=25),
    lag=st.integers(min_value=0, max_value=21),
)
def test_orders_are_never_double_counted(deliveries: list, lag: int) -> None:
    """Test an order is eligible in at most one window and never eligible and reserved together."""
    events = [_order(f"o{i}", 100.0, delivered=d) for i, d in enumerate(deliveries)]
    windows = settlement_windows(date(2025, 1, 1), 6)

    periods = calculate_settlement_periods(events, windows, SafetyMargin.MODERATE, reserve_lag_days=lag)

    eligible_counts: dict = {}
    for period in periods:
        assert not set(period.eligible_event_ids) & set(period.reserve_event_ids)
        for event_id in period.eligible_event_ids:
            eligible_counts[event_id] = eligible_counts.get(event_id, 0) + 1
    assert all(count == 1 for count in eligible_counts.values())

    covered_start, covered_end = windows[0][0], windows[-1][1]
    for event in events:
        unlocks = event.unlock_date(lag)
        expected = 1 if covered_start <= unlocks < covered_end else 0
        assert eligible_counts.get(event.id, 0) == expected
