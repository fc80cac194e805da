from __future__ import annotations

import math
from datetime import date, datetime


def as_calendar_date(value: date | datetime | str | None) -> date | None:
    """Normalize a date-ish value to a calendar date, dropping any time of day."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    return date.fromisoformat(raw[:10])


def billable_weeks(start_date: date | datetime | str | None, end_date: date | datetime | str | None) -> int:
    start = as_calendar_date(start_date)
    end = as_calendar_date(end_date)
    if start is None or end is None:
        return 0
    days = (end - start).days
    if days < 0:
        return 0
    return max(1, math.ceil(days / 7))


def calculate_rental_cost(
    start_date: date | datetime | str | None,
    end_date: date | datetime | str | None,
    weekly_price: float | None,
) -> float:
    """Cost of a rental billed per started week, with a one week minimum.

    Missing dates, a negative weekly price or an end date before the start
    date all price the rental at 0 instead of raising.
    """
    if weekly_price is None:
        return 0
    price = float(weekly_price)
    if price < 0:
        return 0
    weeks = billable_weeks(start_date, end_date)
    if weeks == 0:
        return 0
    return weeks * price
