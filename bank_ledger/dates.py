"""Calendar arithmetic shared by account maturity and standing order scheduling"""

import calendar
from datetime import date, datetime
from typing import Union

DateLike = Union[date, datetime]


def add_months(value: DateLike, months: int) -> DateLike:
    """
    Add calendar months, clamping the day to the last day of the target month.
    
    2024-01-31 + 1 month -> 2024-02-29. Works for both date and datetime.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_years(value: DateLike, years: int) -> DateLike:
    """Add calendar years (Feb 29 clamps to Feb 28 in non-leap years)"""
    return add_months(value, 12 * years)
