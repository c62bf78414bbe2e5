# src/apiwatch/utils/time_range.py
"""
Helpers for relative time-range strings such as "1h", "24h", "7d", "3m".
"""

import calendar
import re
from datetime import datetime, timedelta

from apiwatch.exceptions import ValidationError

TIME_RANGE_PATTERN = re.compile(r"^(\d+)([hdwmy])$")

_FIXED_UNITS = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def subtract_months(moment: datetime, months: int) -> datetime:
    """Step back whole calendar months, clamping the day to the target month's length."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    if year < 1:
        raise ValidationError("Time range reaches before year 1")
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_time_range(value: str, now: datetime) -> datetime:
    """
    Return the start of the window described by `value`, counted back from `now`.

    Hours, days and weeks are exact durations; months and years are calendar
    steps (Mar 31 minus 1m is Feb 28/29).

    Raises:
        ValidationError: when the string is not <digits><h|d|w|m|y>.
    """
    match = TIME_RANGE_PATTERN.match((value or "").strip())
    if not match:
        raise ValidationError(
            f"Invalid time range format {value!r}. Use format like 1h, 24h, 7d, etc."
        )

    amount = int(match.group(1))
    unit = match.group(2)

    if unit in _FIXED_UNITS:
        try:
            return now - _FIXED_UNITS[unit] * amount
        except OverflowError:
            raise ValidationError(f"Time range {value!r} is too large")
    if unit == "m":
        return subtract_months(now, amount)
    return subtract_months(now, amount * 12)
