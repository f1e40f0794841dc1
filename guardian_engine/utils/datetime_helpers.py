"""
Standardized Date/Time Handling Utilities

This module provides centralized functions for date/time operations to ensure:
1. All stored timestamps are timezone-aware UTC
2. Report dates are plain calendar dates in "YYYY-MM-DD" form
3. Streak arithmetic is done on calendar days, never on elapsed hours

CRITICAL RULES:
- Always timestamp records with now_utc()
- Always parse caller-supplied report dates with parse_report_date()
- Never compare a datetime against a date
"""

import logging
import re
from datetime import datetime, date, timedelta
from typing import List, Union
from zoneinfo import ZoneInfo

from guardian_engine.exceptions import ValidationError

logger = logging.getLogger(__name__)

REPORT_DATE_FORMAT = "%Y-%m-%d"
_REPORT_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(ZoneInfo("UTC"))


def parse_report_date(value: Union[str, date], field: str = "date") -> date:
    """
    Parse a report date supplied by a caller

    Args:
        value: "YYYY-MM-DD" string or a date (datetimes are rejected)
        field: Field name used in the validation error

    Returns:
        Calendar date

    Raises:
        ValidationError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        raise ValidationError(
            message="Expected a calendar date, got a datetime",
            field=field,
            value=value.isoformat()
        )
    if isinstance(value, date):
        return value

    if not isinstance(value, str) or not _REPORT_DATE_PATTERN.match(value):
        raise ValidationError(
            message="Date must use the YYYY-MM-DD format",
            field=field,
            value=value
        )

    try:
        return datetime.strptime(value, REPORT_DATE_FORMAT).date()
    except ValueError as e:
        raise ValidationError(
            message=f"Not a calendar date: {e}",
            field=field,
            value=value
        )


def format_report_date(d: date) -> str:
    """Format a date as the "YYYY-MM-DD" string used in record keys"""
    return d.strftime(REPORT_DATE_FORMAT)


def days_between(earlier: date, later: date) -> int:
    """Number of calendar days from earlier to later (negative if reversed)"""
    return (later - earlier).days


def preceding_days(d: date, count: int) -> List[date]:
    """
    Calendar days immediately before d, oldest first

    Example:
        >>> preceding_days(date(2025, 1, 8), 2)
        [datetime.date(2025, 1, 6), datetime.date(2025, 1, 7)]
    """
    return [d - timedelta(days=offset) for offset in range(count, 0, -1)]


def start_of_day(d: date, tz: ZoneInfo = ZoneInfo("UTC")) -> datetime:
    """Midnight at the start of d in the given timezone"""
    return datetime(d.year, d.month, d.day, tzinfo=tz)
