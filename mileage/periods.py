"""Calendar-month arithmetic shared by the ledger and the analyzer."""

import calendar
from datetime import date, datetime
from typing import TypeVar

D = TypeVar("D", date, datetime)


def add_months(value: D, months: int) -> D:
    """Shift by whole calendar months, clamping to the end of short months."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def month_span(start: date, end: date) -> int:
    """Number of calendar months touched from start to end, inclusive."""
    return (end.year - start.year) * 12 + (end.month - start.month) + 1
