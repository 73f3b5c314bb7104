"""Utility functions for the quote calculator.

This module provides the date helpers behind the payment calendar (next
quincena cutoff, calendar day counts and month arithmetic) together with the
numeric helpers used to turn user input into ``Decimal`` values and to round
money the same way everywhere. Dates are plain ``datetime.date`` values, so
time of day and time zones never leak into day counts.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, getcontext
from typing import Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def decimal_from_value(value: Number) -> Decimal:
    """Convert a numeric value into a ``Decimal``.

    Floats go through their string form so that ``0.45`` becomes exactly
    ``Decimal("0.45")``. Strings may contain thousands separators. Raises
    ``ValueError`` if conversion fails.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value}")
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except Exception as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def round2(value: Decimal) -> Decimal:
    """Round a monetary amount to cents, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_iso_date(value: Union[str, date]) -> date:
    """Parse an ISO-8601 date (``YYYY-MM-DD``) into a ``date``.

    A full timestamp is accepted too; only its calendar date is kept.

    Raises
    ------
    ValueError
        If the string is not a valid ISO date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except Exception as exc:
        raise ValueError(f"Invalid ISO date string: {value}") from exc


def last_day_of_month(dt: date) -> date:
    return date(dt.year, dt.month, calendar.monthrange(dt.year, dt.month)[1])


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_quincena(dt: date) -> date:
    """Return the next biweekly cutoff on or after ``dt``.

    Days 1 to 15 map to the 15th of the same month; later days map to the
    last calendar day of the month.
    """
    dt = parse_iso_date(dt)
    if dt.day <= 15:
        return dt.replace(day=15)
    return last_day_of_month(dt)


def days_between(start: date, end: date) -> int:
    """Calendar days from ``start`` (inclusive) to ``end`` (exclusive).

    Never negative; zero when both dates are equal.
    """
    delta = (parse_iso_date(end) - parse_iso_date(start)).days
    return max(0, delta)


def accrual_days(start: date, end: date) -> int:
    """Days of interest in a stub period running from ``start`` to ``end``.

    The disbursement date accrues interest as well, so a quote dated the 11th
    with a cutoff on the 15th accrues five days.
    """
    return days_between(start, end) + 1
