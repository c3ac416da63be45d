"""Normalization of raw marketplace events into FinancialEvent records.

Raw events arrive from marketplace connectors as loosely typed mappings with
marketplace-specific type strings. This module:

- maps type strings onto the canonical EventType categories,
- validates timestamp and amount fields (malformed events are dropped and
  counted, never coerced to zero),
- derives the net amount per event:

      net = gross - fees - shipping_cost - ads_cost

  and, for orders, further applies the account-level return and chargeback
  rates: ``net * (1 - return_rate) * (1 - chargeback_rate)``.

Return and chargeback rates are account constants because the upstream feed
does not link returns or chargebacks to individual orders.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Union

import pandas as pd

from payout_core.events.types import EventType, FinancialEvent
from payout_core.exceptions import MalformedEventError

logger = logging.getLogger(__name__)

RawEvent = Mapping[str, Any]

# Keys are lower-cased with non-alphanumerics stripped
_TYPE_ALIASES: dict[str, EventType] = {
    "order": EventType.ORDER,
    "sale": EventType.ORDER,
    "shipment": EventType.ORDER,
    "refund": EventType.REFUND,
    "return": EventType.REFUND,
    "reimbursement": EventType.REIMBURSEMENT,
    "servicefee": EventType.SERVICE_FEE,
    "fee": EventType.SERVICE_FEE,
    "adjustment": EventType.ADJUSTMENT,
    "guaranteeclaim": EventType.GUARANTEE_CLAIM,
    "atozguaranteeclaim": EventType.GUARANTEE_CLAIM,
    "chargeback": EventType.CHARGEBACK,
}

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

COST_FIELDS = ("fees", "shipping_cost", "ads_cost")


def classify_event_type(raw_type: str | None) -> EventType:
    """Map a marketplace-specific type string to a canonical EventType.

    Matching ignores case and punctuation. Reimbursement and fee families
    ("SAFETReimbursement", "FBAStorageFee") match by suffix. Anything else is
    tagged OTHER.

    Examples:
        >>> classify_event_type("A-to-z Guarantee Claim")
        <EventType.GUARANTEE_CLAIM: 'GuaranteeClaim'>
        >>> classify_event_type("Coupon")
        <EventType.OTHER: 'Other'>
    """
    if not raw_type:
        return EventType.OTHER
    key = _NON_ALNUM_RE.sub("", str(raw_type).lower())
    if key in _TYPE_ALIASES:
        return _TYPE_ALIASES[key]
    if key.endswith("reimbursement"):
        return EventType.REIMBURSEMENT
    if key.endswith("fee") or key.endswith("fees"):
        return EventType.SERVICE_FEE
    return EventType.OTHER


def _to_float(value: Any, field_name: str, event_id: str | None) -> float:
    """Convert a numeric field, refusing anything that is not a real number."""
    if value is None or isinstance(value, bool):
        raise MalformedEventError(f"Event {event_id}: '{field_name}' is missing", event_id)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(
            f"Event {event_id}: '{field_name}' is not numeric ({value!r})", event_id
        ) from e
    if math.isnan(number) or math.isinf(number):
        raise MalformedEventError(
            f"Event {event_id}: '{field_name}' is not a finite number", event_id
        )
    return number


def _to_datetime(value: Any, event_id: str | None) -> datetime:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MalformedEventError(f"Event {event_id}: 'timestamp' is missing", event_id)
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        parsed = pd.Timestamp(value)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(
            f"Event {event_id}: 'timestamp' is not a valid date ({value!r})", event_id
        ) from e
    if pd.isna(parsed):
        raise MalformedEventError(f"Event {event_id}: 'timestamp' is missing", event_id)
    return parsed.to_pydatetime()


def _to_date(value: Any, event_id: str | None) -> date | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = pd.Timestamp(value)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(
            f"Event {event_id}: 'delivery_date' is not a valid date ({value!r})", event_id
        ) from e
    if pd.isna(parsed):
        return None
    return parsed.date()


def normalize_event(
    raw: RawEvent,
    return_rate: float = 0.0,
    chargeback_rate: float = 0.0,
) -> FinancialEvent:
    """Normalize one raw event.

    Args:
        raw: Mapping with at least 'id', 'timestamp', 'type' and
            'gross_amount' (or 'amount'). Optional: 'fees', 'shipping_cost',
            'ads_cost', 'order_id', 'delivery_date'.
        return_rate: Account-level historical return rate (0-1).
        chargeback_rate: Account-level historical chargeback rate (0-1).

    Returns:
        FinancialEvent with canonical type and derived net amount.

    Raises:
        MalformedEventError: If timestamp or amount is missing or non-numeric.
    """
    event_id = raw.get("id")
    event_id = str(event_id) if event_id is not None else None

    timestamp = _to_datetime(raw.get("timestamp"), event_id)
    gross_value = raw.get("gross_amount")
    if gross_value is None:
        gross_value = raw.get("amount")
    gross = _to_float(gross_value, "gross_amount", event_id)

    costs: dict[str, float] = {}
    for name in COST_FIELDS:
        value = raw.get(name)
        is_blank = (
            value is None
            or (isinstance(value, float) and math.isnan(value))
            or (isinstance(value, str) and not value.strip())
        )
        costs[name] = 0.0 if is_blank else _to_float(value, name, event_id)

    raw_type = raw.get("type")
    event_type = classify_event_type(raw_type)

    net = gross - costs["fees"] - costs["shipping_cost"] - costs["ads_cost"]
    if event_type is EventType.ORDER:
        net = net * (1.0 - return_rate) * (1.0 - chargeback_rate)

    order_id = raw.get("order_id")
    if isinstance(order_id, float) and math.isnan(order_id):
        order_id = None
    return FinancialEvent(
        id=event_id if event_id is not None else f"{raw_type}:{timestamp.isoformat()}",
        timestamp=timestamp,
        type=event_type,
        gross_amount=gross,
        net_amount=net,
        fees=costs["fees"],
        shipping_cost=costs["shipping_cost"],
        ads_cost=costs["ads_cost"],
        order_id=str(order_id) if order_id not in (None, "") else None,
        delivery_date=_to_date(raw.get("delivery_date"), event_id),
        raw_type=str(raw_type) if raw_type is not None else None,
    )


@dataclass
class NormalizationResult:
    """Outcome of normalizing a batch of raw events.

    Attributes:
        events: Successfully normalized events, in input order.
        skipped: Number of malformed events dropped.
        errors: The errors for the dropped events.
    """

    events: list[FinancialEvent] = field(default_factory=list)
    skipped: int = 0
    errors: list[MalformedEventError] = field(default_factory=list)


def normalize_events(
    raw_events: Iterable[Union[RawEvent, FinancialEvent]],
    return_rate: float = 0.0,
    chargeback_rate: float = 0.0,
) -> NormalizationResult:
    """Normalize a batch of raw events, skipping and counting malformed ones.

    Already-normalized FinancialEvent instances are passed through unchanged.
    """
    result = NormalizationResult()
    for raw in raw_events:
        if isinstance(raw, FinancialEvent):
            result.events.append(raw)
            continue
        try:
            result.events.append(normalize_event(raw, return_rate, chargeback_rate))
        except MalformedEventError as e:
            logger.warning(f"Skipping malformed event: {e}")
            result.skipped += 1
            result.errors.append(e)

    if result.skipped:
        logger.info(
            f"Normalized {len(result.events)} events, skipped {result.skipped} malformed"
        )
    return result


def summarize_events(events: Iterable[FinancialEvent]) -> dict[str, Any]:
    """Total net amounts per category.

    Events tagged OTHER count toward ``total`` but are excluded from the
    per-category breakdown.

    Returns:
        Dictionary with keys 'by_category' ({EventType.value: float}),
        'total' (float) and 'event_count' (int).
    """
    by_category: dict[str, float] = {}
    total = 0.0
    count = 0
    for event in events:
        total += event.net_amount
        count += 1
        if event.type is EventType.OTHER:
            continue
        by_category[event.type.value] = by_category.get(event.type.value, 0.0) + event.net_amount
    return {"by_category": by_category, "total": total, "event_count": count}
