"""
Date helpers for policy terms.

Policy terms are expressed in whole months. A policy starting on the first of
January with a 12 month term covers through the 31st of December.
"""

import calendar
from datetime import date, datetime, timedelta, timezone


def utc_today():
    """Return today's date in UTC."""
    return datetime.now(timezone.utc).date()


def add_months(start, months):
    """
    Add a number of months to a date, clamping to the end of the month.

    Examples:
        add_months(date(2024, 1, 31), 1) -> date(2024, 2, 29)
        add_months(date(2024, 1, 1), 12) -> date(2025, 1, 1)
    """
    if isinstance(start, datetime):
        start = start.date()
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def compute_end_date(start, term_months):
    """Return the last covered day of a term starting on ``start``."""
    return add_months(start, term_months) - timedelta(days=1)


def parse_date(value):
    """
    Coerce a date, datetime or ISO-8601 string into a date.

    Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    raise ValueError(f"Invalid date: {value!r}")
