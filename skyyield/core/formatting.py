"""Helpers for money, percentage and month values shown to admins."""
from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

CENTS = Decimal("0.01")


def to_decimal(value: Any) -> Decimal | None:
    """Coerce numbers and numeric strings to Decimal; blank values become None."""
    if value in (None, ""):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"{value!r} is not a valid amount") from None


def format_money(value: Any) -> str:
    """Format a value as dollars with thousand separators and two decimals."""
    amount = to_decimal(value) or Decimal("0")
    amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    return f"${amount:,.2f}"


def format_percent(value: Any) -> str:
    """Render a percentage without trailing zeros (``12.50`` -> ``12.5%``)."""
    rate = to_decimal(value) or Decimal("0")
    text = f"{rate.normalize():f}"
    return f"{text}%"


def parse_commission_month(value: Any) -> date:
    """Normalise a month input to the first day of that month.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM``, ``YYYY-MM-DD`` and the
    looser spellings ``dateutil`` understands (``"March 2025"``).
    """
    if isinstance(value, datetime):
        return value.date().replace(day=1)
    if isinstance(value, date):
        return value.replace(day=1)
    if value is None or not str(value).strip():
        raise ValueError("Commission month is required")
    text = str(value).strip()
    try:
        parsed = date_parser.parse(text, default=datetime(2000, 1, 1))
    except (ValueError, OverflowError):
        raise ValueError(f"Invalid commission month {text!r}; use YYYY-MM or YYYY-MM-DD") from None
    return parsed.date().replace(day=1)


def month_bounds(month_start: date) -> tuple[date, date]:
    """Return ``(first day, first day of next month)`` for half-open range filters."""
    start = month_start.replace(day=1)
    return start, start + relativedelta(months=1)


__all__ = [
    "format_money",
    "format_percent",
    "month_bounds",
    "parse_commission_month",
    "to_decimal",
]
