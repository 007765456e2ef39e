"""
Data validation utilities
"""
import pandas as pd
from typing import List, Optional, Tuple

from models.sprint import SprintDefinition
from modules.working_day_calendar import WorkingDayCalendar
from utils.constants import (
    MAX_SPRINT_LENGTH_WEEKS,
    MIN_SPRINT_LENGTH_WEEKS,
    VALID_VALUES,
    VALUES_REQUIRING_REASON,
)
from utils.date_utils import parse_date_flexible


def _is_blank(value) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return str(value).strip() == ''


def validate_schedule_entry(entry_dict: dict) -> Tuple[bool, List[str]]:
    """
    Validate a raw schedule entry record (e.g. a store row)

    Args:
        entry_dict: Dictionary with member_id, date, value and optional reason

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    member_id = entry_dict.get('member_id')
    if _is_blank(member_id):
        errors.append("member_id is required")
    else:
        try:
            int(member_id)
        except (ValueError, TypeError):
            errors.append(f"Invalid member_id: {member_id}")

    entry_date = entry_dict.get('date')
    if _is_blank(entry_date):
        errors.append("date is required")
    else:
        try:
            parse_date_flexible(entry_date)
        except ValueError:
            errors.append(f"Invalid date: {entry_date}")

    # A missing value is allowed (cleared entry); anything else must be a known code
    value = entry_dict.get('value')
    if not _is_blank(value) and value not in VALID_VALUES:
        errors.append(f"Invalid value {value!r} (expected one of {', '.join(VALID_VALUES)})")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_reason_policy(value: Optional[str], reason: Optional[str]) -> Tuple[bool, List[str]]:
    """
    Half days and absences must carry a reason

    Enforced by callers (CLI, forms); the engine accepts entries without one.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if value in VALUES_REQUIRING_REASON and _is_blank(reason):
        label = 'a half day' if value == '0.5' else 'an absence'
        errors.append(f"A reason is required for {label} ({value})")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_sprint_definition(
    definition: SprintDefinition,
    calendar: WorkingDayCalendar,
    length_weeks: int,
    working_days_per_week: int = 5
) -> Tuple[bool, List[str], List[str]]:
    """
    Validate a manager-entered sprint definition

    Args:
        definition: Sprint to validate
        calendar: Working-day calendar used to count sprint days
        length_weeks: Intended sprint length in weeks
        working_days_per_week: Working days expected per week

    Returns:
        Tuple of (is_valid, list_of_errors, list_of_warnings)
    """
    errors = []
    warnings = []

    if definition.start_date > definition.end_date:
        errors.append(f"Start date {definition.start_date} is after end date {definition.end_date}")

    if not (MIN_SPRINT_LENGTH_WEEKS <= length_weeks <= MAX_SPRINT_LENGTH_WEEKS):
        errors.append(
            f"Sprint length must be {MIN_SPRINT_LENGTH_WEEKS}-{MAX_SPRINT_LENGTH_WEEKS} weeks "
            f"(received: {length_weeks})"
        )

    if not errors:
        actual = len(calendar.working_days(definition.start_date, definition.end_date))
        expected = length_weeks * working_days_per_week
        if actual != expected:
            warnings.append(
                f"Sprint {definition.sprint_number} has {actual} working days, "
                f"expected {expected} for {length_weeks} week(s)"
            )
        if not calendar.is_working_day(definition.start_date):
            warnings.append(f"Sprint starts on a non-working day ({definition.start_date})")

    is_valid = len(errors) == 0
    return is_valid, errors, warnings
