"""Public API for the payout forecasting pipeline.

This module composes the pure calculation stages into one in-memory run for
a single account:

    normalize events -> model (settlement windows, statistical daily or
    monthly seasonality)
    -> horizon blend with the transaction trend -> safety margin

It does not read or write any storage. Typed engine errors are returned on
the result instead of raised, so callers can decide how to display a partial
or missing forecast.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

import pandas as pd

from payout_core.events.normalizer import normalize_events
from payout_core.events.types import EventType, FinancialEvent
from payout_core.exceptions import InsufficientDataError, PayoutForecastError
from payout_core.forecasting.blending import blend, select_horizon
from payout_core.forecasting.config import MIN_CONFIRMED_PAYOUTS, SEASONALITY_MONTHS
from payout_core.forecasting.data.preparation import confirmed_payout_series, daily_order_series
from payout_core.forecasting.models.seasonality import SeasonalityModel
from payout_core.forecasting.models.statistical import StatisticalDailyModel
from payout_core.forecasting.models.trend import TransactionTrendModel, TrendFit
from payout_core.forecasting.safety import apply_safety_margin
from payout_core.forecasting.settlement import calculate_settlement_periods, settlement_windows
from payout_core.forecasting.types import (
    ForecastMethod,
    ModelDebugInfo,
    PayoutFrequency,
    PayoutRecord,
    PayoutStatus,
    SettlementPeriod,
    forecast_record_id,
)

if TYPE_CHECKING:
    from payout_core.config import AccountConfig

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NO_FORECAST = "no_forecast"

RECORD_COLUMNS = [
    "id",
    "account_id",
    "payout_date",
    "total_amount",
    "status",
    "payout_type",
    "orders_total",
    "fees_total",
    "refunds_total",
    "raw_amount",
    "uncertainty",
    "modeling_method",
]


@dataclass
class ForecastResult:
    """Result of one account's forecasting run.

    Attributes:
        account_id: Account the forecast belongs to.
        records: Forecasted PayoutRecords, sorted by payout date.
        settlement_periods: Settlement windows (bi-weekly accounts only).
        skipped_events: Number of malformed events dropped during normalization.
        status: "ok" or "no_forecast".
        error: Typed engine error when status is "no_forecast".
        metadata: Additional information about the run.
        debug: Optional model debug info keyed by model name. Only populated
            when build_account_forecast is called with debug=True.
    """

    account_id: str
    records: List[PayoutRecord] = field(default_factory=list)
    settlement_periods: List[SettlementPeriod] = field(default_factory=list)
    skipped_events: int = 0
    status: str = STATUS_OK
    error: Optional[PayoutForecastError] = None
    metadata: Dict[str, object] = field(default_factory=dict)
    debug: Optional[Dict[str, ModelDebugInfo]] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    @property
    def forecast(self) -> pd.DataFrame:
        """Forecasted records as a DataFrame (one row per payout date)."""
        return records_to_dataframe(self.records)


def records_to_dataframe(records: Iterable[PayoutRecord]) -> pd.DataFrame:
    """Convert payout records to a structured DataFrame.

    Returns:
        DataFrame with RECORD_COLUMNS, sorted by payout_date
    """
    rows = []
    for record in records:
        row = record.to_dict()
        rows.append({column: row[column] for column in RECORD_COLUMNS})

    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)

    df = pd.DataFrame(rows)
    df["payout_date"] = pd.to_datetime(df["payout_date"])
    return df.sort_values(["account_id", "payout_date"]).reset_index(drop=True)


def _generated_at(as_of: date) -> datetime:
    return datetime(as_of.year, as_of.month, as_of.day)


def _fit_trend(
    events: List[FinancialEvent],
    config: AccountConfig,
    as_of: date,
    debug_info: Optional[Dict[str, ModelDebugInfo]],
) -> Optional[TrendFit]:
    """Fit the transaction-trend signal; None when there is too little order data."""
    model = TransactionTrendModel()
    series = daily_order_series(events, as_of, config.trend_lookback_days)
    try:
        fit = model.train(series)
    except InsufficientDataError as e:
        logger.info(f"{config.account_id}: transaction trend unavailable ({e})")
        return None
    if debug_info is not None:
        model.forecast(fit, steps=1, last_date=as_of)
        debug_info[model.debug_.model_name] = model.debug_
    return fit


def _locked_dates(payouts: Iterable[PayoutRecord]) -> set:
    """Dates that already have an estimated or confirmed payout."""
    return {p.payout_date for p in payouts if p.status is not PayoutStatus.FORECASTED}


def _forecast_daily(
    config: AccountConfig,
    events: List[FinancialEvent],
    payouts: List[PayoutRecord],
    as_of: date,
    debug_info: Optional[Dict[str, ModelDebugInfo]],
) -> List[PayoutRecord]:
    """Statistical daily model blended with the transaction trend."""
    model = StatisticalDailyModel(
        recent_window=config.recent_payout_window,
        confidence_factor=config.confidence_factor,
    )
    fit = model.fit_records(payouts, as_of)
    history = model.forecast(fit, steps=config.horizon_days, last_date=as_of)
    if debug_info is not None and model.debug_ is not None:
        debug_info[model.debug_.model_name] = model.debug_

    trend = _fit_trend(events, config, as_of, debug_info)
    locked = _locked_dates(payouts)
    generated_at = _generated_at(as_of)

    records = []
    for forecast_ts, history_signal in history.items():
        payout_date = forecast_ts.date()
        if payout_date in locked:
            continue
        days_ahead = (payout_date - as_of).days
        trend_signal = trend.project(days_ahead) if trend is not None else None

        horizon = select_horizon(payout_date, as_of)
        blended = blend(
            float(history_signal),
            trend_signal,
            config.weights.payout_history_weight(horizon),
        )
        adjusted = apply_safety_margin(blended, config.safety_margin)

        records.append(
            PayoutRecord(
                id=forecast_record_id(config.account_id, payout_date),
                account_id=config.account_id,
                payout_date=payout_date,
                total_amount=max(0.0, adjusted.adjusted),
                status=PayoutStatus.FORECASTED,
                payout_type=PayoutFrequency.DAILY.value,
                orders_total=trend_signal if trend_signal is not None else 0.0,
                raw_amount=adjusted.raw,
                uncertainty=fit.daily_variation,
                modeling_method=(
                    "statistical_daily" if trend_signal is None else f"blended_{horizon.value}"
                ),
                generated_at=generated_at,
            )
        )
    return records


def _last_settlement(payouts: List[PayoutRecord], as_of: date) -> Optional[date]:
    """Latest confirmed settlement date on or before as_of."""
    settled = [
        p.payout_date
        for p in payouts
        if p.status is PayoutStatus.CONFIRMED and p.payout_date <= as_of
    ]
    return max(settled) if settled else None


def _first_window_start(last_settlement: Optional[date], as_of: date, period_days: int) -> date:
    """Start of the settlement window containing as_of.

    Windows are aligned to the latest confirmed settlement date on or before
    as_of; without one the first window starts at as_of.
    """
    start = last_settlement or as_of
    while start + timedelta(days=period_days) <= as_of:
        start += timedelta(days=period_days)
    return start


def _period_totals(period: SettlementPeriod, events_by_id: Mapping[str, FinancialEvent]) -> Dict[str, float]:
    """Orders, fees and refunds attributed to a settlement window."""
    fees = sum(events_by_id[i].fees for i in period.eligible_event_ids)
    refunds = 0.0
    for event_id in period.adjustment_event_ids:
        event = events_by_id[event_id]
        if event.type is EventType.SERVICE_FEE:
            fees += abs(event.net_amount)
        elif event.type is EventType.REFUND:
            refunds += abs(event.net_amount)
    return {"orders_total": period.eligible_amount, "fees_total": fees, "refunds_total": refunds}


def _forecast_biweekly(
    config: AccountConfig,
    events: List[FinancialEvent],
    payouts: List[PayoutRecord],
    as_of: date,
    debug_info: Optional[Dict[str, ModelDebugInfo]],
) -> tuple:
    """Settlement-window model, blended with payout history when available."""
    period_days = config.settlement_period_days
    last_settlement = _last_settlement(payouts, as_of)
    first_start = _first_window_start(last_settlement, as_of, period_days)
    horizon_end = as_of + timedelta(days=config.horizon_days)
    count = 0
    while first_start + timedelta(days=period_days * count) < horizon_end:
        count += 1
    windows = settlement_windows(first_start, count, period_days)

    periods = calculate_settlement_periods(
        events,
        windows,
        safety_margin=config.safety_margin,
        reserve_lag_days=config.reserve_lag_days,
        reserve_multiplier=config.reserve_multiplier,
        opening_balance=config.opening_balance,
        estimated_delivery_days=config.estimated_delivery_days,
        min_reserve_floor=config.min_reserve_floor,
        unpaid_since=last_settlement,
    )

    # Payout-history variant: mean of recent confirmed settlements
    confirmed = confirmed_payout_series(payouts)
    confirmed = confirmed[confirmed.index <= pd.Timestamp(as_of)]
    history_signal: Optional[float] = None
    if len(confirmed) >= MIN_CONFIRMED_PAYOUTS:
        history_signal = float(confirmed.iloc[-config.recent_payout_window :].mean())
    if debug_info is not None:
        debug_info["settlement_biweekly"] = ModelDebugInfo(
            model_name="settlement_biweekly",
            data={
                "windows": len(periods),
                "first_window_start": first_start.isoformat(),
                "last_settlement": last_settlement.isoformat() if last_settlement else None,
                "history_signal": history_signal,
                "confirmed_payouts": int(len(confirmed)),
            },
        )

    trend = _fit_trend(events, config, as_of, debug_info)
    events_by_id = {e.id: e for e in events}
    locked = _locked_dates(payouts)
    generated_at = _generated_at(as_of)

    records = []
    for period in periods:
        payout_date = period.end_date
        if payout_date in locked:
            continue

        # Transaction signal: the window's own events, or the order trend
        # projected over the window when nothing has happened in it yet
        if period.has_activity or trend is None:
            transaction_signal = period.raw_payout
            method = "settlement_biweekly"
        else:
            first_day = max(1, (period.start_date - as_of).days)
            transaction_signal = trend.project_window(first_day, period_days) + period.prior_balance
            method = "trend_projection"

        horizon = select_horizon(payout_date, as_of)
        if history_signal is None:
            value = transaction_signal
        else:
            value = blend(
                history_signal,
                transaction_signal,
                config.weights.payout_history_weight(horizon),
            )
            method = f"blended_{horizon.value}"
        adjusted = apply_safety_margin(value, config.safety_margin)

        records.append(
            PayoutRecord(
                id=forecast_record_id(config.account_id, payout_date),
                account_id=config.account_id,
                payout_date=payout_date,
                total_amount=max(0.0, adjusted.adjusted),
                status=PayoutStatus.FORECASTED,
                payout_type=PayoutFrequency.BI_WEEKLY.value,
                raw_amount=adjusted.raw,
                modeling_method=method,
                generated_at=generated_at,
                **_period_totals(period, events_by_id),
            )
        )
    return records, periods


def _forecast_seasonality(
    config: AccountConfig,
    payouts: List[PayoutRecord],
    as_of: date,
    debug_info: Optional[Dict[str, ModelDebugInfo]],
) -> List[PayoutRecord]:
    """Monthly seasonality forecast from confirmed payout history."""
    model = SeasonalityModel()
    fit = model.fit_records(payouts, as_of)
    monthly = model.forecast(fit, steps=SEASONALITY_MONTHS, last_date=as_of)
    if debug_info is not None and model.debug_ is not None:
        debug_info[model.debug_.model_name] = model.debug_

    locked = _locked_dates(payouts)
    generated_at = _generated_at(as_of)

    records = []
    for forecast_ts, value in monthly.items():
        payout_date = forecast_ts.date()
        if payout_date in locked:
            continue
        adjusted = apply_safety_margin(float(value), config.safety_margin)
        records.append(
            PayoutRecord(
                id=forecast_record_id(config.account_id, payout_date),
                account_id=config.account_id,
                payout_date=payout_date,
                total_amount=max(0.0, adjusted.adjusted),
                status=PayoutStatus.FORECASTED,
                payout_type=config.payout_frequency.value,
                orders_total=fit.avg_payout,
                raw_amount=adjusted.raw,
                modeling_method="seasonality",
                generated_at=generated_at,
            )
        )
    return records


def build_account_forecast(
    config: AccountConfig,
    events: Iterable[Union[Mapping[str, Any], FinancialEvent]],
    payouts: Iterable[PayoutRecord],
    as_of: date,
    debug: bool = False,
) -> ForecastResult:
    """Run the forecasting pipeline for one account in memory.

    This function:
    - does NOT read or write any storage,
    - does NOT raise engine errors (they are returned on the result),
    - MAY log progress via the logging module.

    Args:
        config: Validated account configuration.
        events: Raw event mappings and/or normalized FinancialEvents.
        payouts: Payout history for the account (any status). Only
            confirmed payouts feed the models; dates that already have an
            estimated or confirmed payout are not forecast.
        as_of: Evaluation date ("today").
        debug: If True, collects model debug info into result.debug.

    Returns:
        ForecastResult. When the engine declines to forecast (for example
        InsufficientDataError) status is "no_forecast", records is empty and
        error holds the typed error.
    """
    normalized = normalize_events(
        events,
        return_rate=config.return_rate,
        chargeback_rate=config.chargeback_rate,
    )
    payouts = [p for p in payouts if p.account_id == config.account_id]
    debug_info: Optional[Dict[str, ModelDebugInfo]] = {} if debug else None

    logger.info(
        f"Forecasting {config.account_id} ({config.payout_frequency.value}) as of {as_of}: "
        f"{len(normalized.events)} events, {len(payouts)} payouts, {config.horizon_days} days"
    )

    metadata: Dict[str, object] = {
        "as_of": as_of,
        "payout_frequency": config.payout_frequency.value,
        "forecast_method": config.forecast_method.value,
        "horizon_days": config.horizon_days,
        "safety_margin": config.safety_margin.name.lower(),
        "event_count": len(normalized.events),
    }

    periods: List[SettlementPeriod] = []
    try:
        if config.forecast_method is ForecastMethod.SEASONALITY:
            records = _forecast_seasonality(config, payouts, as_of, debug_info)
        elif config.payout_frequency is PayoutFrequency.DAILY:
            records = _forecast_daily(config, normalized.events, payouts, as_of, debug_info)
        else:
            records, periods = _forecast_biweekly(
                config, normalized.events, payouts, as_of, debug_info
            )
    except PayoutForecastError as e:
        logger.warning(f"{config.account_id}: no forecast available ({e})")
        return ForecastResult(
            account_id=config.account_id,
            skipped_events=normalized.skipped,
            status=STATUS_NO_FORECAST,
            error=e,
            metadata=metadata,
            debug=debug_info,
        )

    records.sort(key=lambda r: r.payout_date)
    metadata["record_count"] = len(records)
    logger.info(
        f"{config.account_id}: generated {len(records)} forecast records, "
        f"skipped {normalized.skipped} malformed events"
    )

    return ForecastResult(
        account_id=config.account_id,
        records=records,
        settlement_periods=periods,
        skipped_events=normalized.skipped,
        metadata=metadata,
        debug=debug_info,
    )
