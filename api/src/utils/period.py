"""
Calendar period decomposition between two dates.

Tenure is expressed as whole years, whole months remaining after the years
and whole days remaining after the months, not as a total day count.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional


@dataclass(frozen=True)
class Period:
    """Elapsed calendar period."""
    years: int
    months: int
    days: int

    @property
    def total_months(self) -> int:
        return self.years * 12 + self.months


def add_months(start: date, months: int) -> date:
    """
    Shift a date by a number of calendar months.

    The day of month is clamped to the last day of the target month
    (2024-01-31 plus one month is 2024-02-29).
    """
    month_index = start.year * 12 + (start.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def calculate_period(hire_date: date, today: Optional[date] = None) -> Period:
    """
    Decompose the time elapsed from hire_date to today.

    Adding ``total_months`` to hire_date with add_months() and then ``days``
    days always lands exactly on today.

    Args:
        hire_date: Date the employee was hired
        today: Reference date (defaults to the current UTC date)

    Returns:
        Period with years, months and days
    """
    if today is None:
        today = utc_today()

    total_months = (today.year * 12 + today.month) - (hire_date.year * 12 + hire_date.month)
    days = today.day - hire_date.day

    if total_months > 0 and days < 0:
        total_months -= 1
        days = (today - add_months(hire_date, total_months)).days
    elif total_months < 0 and days > 0:
        total_months += 1
        days -= calendar.monthrange(today.year, today.month)[1]

    years = int(total_months / 12)
    months = total_months - years * 12
    return Period(years=years, months=months, days=days)


def reconstruct(hire_date: date, period: Period) -> date:
    """Apply a period to a date; inverse of calculate_period()."""
    return add_months(hire_date, period.total_months) + timedelta(days=period.days)
