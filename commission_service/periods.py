"""Map calendar dates to bi-weekly commission periods."""

import calendar
from datetime import date
from typing import Tuple, Union

from .errors import ValidationError

FIRST_HALF_LAST_DAY = 15


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def parse_day(value: Union[date, str]) -> date:
    """
    Accept a ``date`` or a ``YYYY-MM-DD`` string.

    Strings are split by hand so no timezone conversion can shift the day.
    A ``datetime`` keeps only its calendar date.
    """
    if isinstance(value, date):
        return date(value.year, value.month, value.day)
    if isinstance(value, str):
        parts = value.strip()[:10].split("-")
        if len(parts) == 3:
            try:
                return date(int(parts[0]), int(parts[1]), int(parts[2]))
            except ValueError:
                pass
    raise ValidationError(f"Invalid date: {value!r}")


def period_range(value: Union[date, str]) -> Tuple[date, date]:
    """Return the (start, end) of the half-month containing ``value``."""
    day = parse_day(value)
    if day.day <= FIRST_HALF_LAST_DAY:
        return day.replace(day=1), day.replace(day=FIRST_HALF_LAST_DAY)
    return day.replace(day=16), day.replace(day=days_in_month(day.year, day.month))


def resolve_period(store, value: Union[date, str]):
    """Get or create the period containing ``value``. Must run inside a transaction."""
    start, end = period_range(value)
    period = store.find_period(start, end)
    if period is None:
        period = store.create_period(start, end)
    return period
