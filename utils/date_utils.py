"""
Date utility functions for sprint and schedule management
"""
from datetime import date, datetime, timedelta
from typing import Union

import pandas as pd

from utils.constants import DATE_KEY_FORMAT

# Weekday names for display (datetime.weekday() order)
WEEKDAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def weekday_from_name(value: Union[int, str]) -> int:
    """
    Resolve a weekday given as an int (Monday=0) or a name ("Friday", "fri")

    Raises:
        ValueError: If the value is not a known weekday
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid weekday: {value!r}")
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise ValueError(f"Weekday must be 0-6 (received {value})")

    name = str(value).strip().lower()
    for index, weekday_name in enumerate(WEEKDAY_NAMES):
        if len(name) >= 3 and weekday_name.lower().startswith(name):
            return index
    raise ValueError(f"Unknown weekday name: {value!r}")


def get_weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


def to_date(value: Union[date, datetime, str]) -> date:
    """
    Normalize a date-like value to a plain date (time component dropped)
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date_flexible(value)


def parse_date_flexible(date_str: str) -> date:
    """
    Parse date string with multiple format attempts

    Args:
        date_str: Date string to parse

    Returns:
        Parsed date

    Raises:
        ValueError: If date cannot be parsed
    """
    if date_str is None or pd.isna(date_str) or str(date_str).strip() == '':
        raise ValueError("Empty date string")

    formats = [
        '%Y-%m-%d',
        '%m/%d/%Y',
        '%Y-%m-%d %H:%M:%S',
        '%Y-%m-%dT%H:%M:%S',
        '%Y/%m/%d',
    ]

    for fmt in formats:
        try:
            return datetime.strptime(str(date_str).strip(), fmt).date()
        except ValueError:
            continue

    # Try pandas parser as last resort
    try:
        return pd.to_datetime(date_str).date()
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Unable to parse date: {date_str}") from exc


def format_date_key(day: date) -> str:
    """Format a date as the ISO key used by snapshots and the store"""
    return day.strftime(DATE_KEY_FORMAT)


def start_of_week(day: date, week_start_day: int) -> date:
    """
    Get the first day of the week containing a date

    Args:
        day: Any date
        week_start_day: Weekday the week starts on (Monday=0)
    """
    return day - timedelta(days=(day.weekday() - week_start_day) % 7)


def is_today(day: date, today: date = None) -> bool:
    if today is None:
        today = date.today()
    return day == today


def is_past(day: date, today: date = None) -> bool:
    if today is None:
        today = date.today()
    return day < today
