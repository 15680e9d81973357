"""
Dates -- month arithmetic for lease terms and recurring charges.

Responsibility:
    Pure date helpers shared by the scheduler, the invoice generator and the
    lifecycle service: calendar-month addition with day clamping, default
    lease terms, ``YYYY-MM`` rental-month keys and human month labels.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Month addition never produces an invalid date: the day is clamped to
      the length of the target month (Jan 31 + 1 month = Feb 28/29).
"""

import calendar
from datetime import date, timedelta


def days_in_month(year: int, month: int) -> int:
    """Number of days in the given month."""
    return calendar.monthrange(year, month)[1]


def add_months(value: date, months: int, day_of_month: int | None = None) -> date:
    """
    Add calendar months to a date.

    The resulting day is ``day_of_month`` when given, otherwise the day of
    ``value``; either way it is clamped to the length of the target month.
    """
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = day_of_month if day_of_month is not None else value.day
    return date(year, month, min(day, days_in_month(year, month)))


def add_years(value: date, years: int) -> date:
    """Add calendar years to a date (Feb 29 clamps to Feb 28)."""
    return add_months(value, 12 * years)


def default_term_end(start: date, months: int = 12) -> date:
    """Standard lease end: the day before the anniversary of ``start``."""
    return add_months(start, months) - timedelta(days=1)


def rental_month_key(value: date) -> str:
    """``YYYY-MM`` key of the month containing ``value``."""
    return f"{value.year:04d}-{value.month:02d}"


def first_of_month(value: date) -> date:
    return value.replace(day=1)


def month_label(value: date, fmt: str = "%B %Y") -> str:
    """Human label for the month of ``value``, e.g. ``March 2025``."""
    return value.strftime(fmt)
