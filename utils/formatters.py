"""
Data formatting utilities for display
"""
import pandas as pd
from datetime import date
from typing import Optional

from utils.constants import STATUS_ICONS
from utils.date_utils import get_weekday_name


def format_hours(hours: float) -> str:
    """
    Format hours for display

    Args:
        hours: Number of hours

    Returns:
        Formatted string
    """
    if hours is None or pd.isna(hours):
        return "-"
    return f"{hours:.1f}h"


def format_percentage(value: Optional[int]) -> str:
    """Format a whole-number percentage"""
    if value is None or pd.isna(value):
        return "-"
    return f"{int(value)}%"


def format_completion_status(status: str, percentage: Optional[int] = None) -> str:
    """
    Format completion status with emoji

    Args:
        status: excellent / good / warning / critical
        percentage: Optional completion percentage to append

    Returns:
        Formatted string
    """
    icon = STATUS_ICONS.get(status, '❓')
    label = f"{icon} {status.capitalize()}"
    if percentage is not None:
        label += f" ({format_percentage(percentage)})"
    return label


def format_date_range(start: date, end: date) -> str:
    """Format a window as 'Jul 27 - Aug 07, 2025'"""
    if start.year == end.year:
        return f"{start.strftime('%b %d')} - {end.strftime('%b %d, %Y')}"
    return f"{start.strftime('%b %d, %Y')} - {end.strftime('%b %d, %Y')}"


def format_day_label(day: date) -> str:
    """Short column label, e.g. 'Sun 07/27'"""
    return f"{get_weekday_name(day)[:3]} {day.strftime('%m/%d')}"
