"""
Calendar arithmetic for schedule advancement.

Month and year steps clamp to the last valid day of the target month
instead of overflowing into the next one (Jan 31 + 1 month = Feb 28/29).
A clamped date is the new anchor: the following step starts from it,
so Jan 31 -> Feb 29 -> Mar 29.
"""

import calendar
from datetime import date, timedelta

from recurring_ledger.models.series import Frequency


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    """Clamp day to valid range for the given year/month."""
    max_day = calendar.monthrange(year, month)[1]
    return min(day, max_day)


def add_months(d: date, n: int) -> date:
    """Add n months to date d, clamping day to month end."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = clamp_day_to_month(year, month, d.day)
    return d.replace(year=year, month=month, day=day)


def add_years(d: date, n: int) -> date:
    """Add n years to date d. Feb 29 becomes Feb 28 in non-leap years."""
    year = d.year + n
    return d.replace(year=year, day=clamp_day_to_month(year, d.month, d.day))


def compute_next_due_date(from_date: date, frequency: Frequency) -> date:
    """
    Advance a due date by exactly one period.

    Always pass the previous due date, never the processing date,
    so period boundaries stay fixed however late a run happens.
    """
    frequency = Frequency(frequency)
    if frequency == Frequency.DAILY:
        return from_date + timedelta(days=1)
    if frequency == Frequency.WEEKLY:
        return from_date + timedelta(days=7)
    if frequency == Frequency.MONTHLY:
        return add_months(from_date, 1)
    return add_years(from_date, 1)
