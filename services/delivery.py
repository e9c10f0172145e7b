"""Delivery date estimates for shipping quotes.

Carrier transit times are expressed in business days, so the estimated
delivery date skips weekends starting from the ship date.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import pytz
from dateutil.parser import parse as dateutil_parse

from shipcostestimate import ShippingQuote

DEFAULT_TIMEZONE = "America/Sao_Paulo"

_SATURDAY = 5


def resolve_timezone(timezone_name: Optional[str]):
    try:
        return pytz.timezone(timezone_name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone '{timezone_name}'")


def _parse_ship_date(value: Any, tz) -> date:
    if value in (None, ""):
        return datetime.now(tz).date()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(tz).date()
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = dateutil_parse(str(value))
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"Could not parse ship date '{value}'")
    if parsed.tzinfo is not None:
        return parsed.astimezone(tz).date()
    return parsed.date()


def add_business_days(start: date, days: int) -> date:
    """Return the date ``days`` business days after ``start``."""
    current = start
    remaining = int(days)
    while remaining > 0:
        current += timedelta(days=1)
        if current.weekday() < _SATURDAY:
            remaining -= 1
    return current


def estimate_delivery_date(
    days: int,
    *,
    ship_date: Any = None,
    timezone_name: Optional[str] = DEFAULT_TIMEZONE,
) -> date:
    tz = resolve_timezone(timezone_name)
    return add_business_days(_parse_ship_date(ship_date, tz), days)


def attach_delivery_dates(
    quotes: Iterable[ShippingQuote],
    *,
    ship_date: Any = None,
    timezone_name: Optional[str] = DEFAULT_TIMEZONE,
) -> List[Dict[str, Any]]:
    """Serialise quotes with an ``estimatedDelivery`` ISO date added to each."""
    tz = resolve_timezone(timezone_name)
    start = _parse_ship_date(ship_date, tz)
    enriched: List[Dict[str, Any]] = []
    for quote in quotes:
        payload = quote.to_dict()
        payload["estimatedDelivery"] = add_business_days(start, quote.days).isoformat()
        enriched.append(payload)
    return enriched
