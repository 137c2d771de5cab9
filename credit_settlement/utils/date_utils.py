"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone
from typing import Union


def today() -> date:
    """Current UTC calendar date; the server clock is authoritative for repayments"""
    return datetime.now(timezone.utc).date()


def as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: Union[date, datetime], end: Union[date, datetime]) -> int:
    """Whole calendar days from start to end (negative if end precedes start)"""
    return (as_date(end) - as_date(start)).days


def add_days(from_date: date, days: int) -> date:
    return as_date(from_date) + timedelta(days=days)
