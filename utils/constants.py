"""
Constants and default configuration values for the availability engine
Values here are the fallbacks used when no config file is supplied
"""
import os
from datetime import date

# Default config file location
CONFIG_PATH = os.path.join(os.path.dirname(__file__), '..', 'config', 'availability.toml')

# Schedule entry values
VALUE_FULL_DAY = "1"
VALUE_HALF_DAY = "0.5"
VALUE_ABSENT = "X"

VALID_VALUES = [VALUE_FULL_DAY, VALUE_HALF_DAY, VALUE_ABSENT]

# Values that require a reason upstream (half day / absent)
VALUES_REQUIRING_REASON = [VALUE_HALF_DAY, VALUE_ABSENT]

# Hour mapping per value
HOURS_PER_FULL_DAY = 7.0
HOURS_PER_HALF_DAY = 3.5
DEFAULT_HOURS_BY_VALUE = {
    VALUE_FULL_DAY: HOURS_PER_FULL_DAY,
    VALUE_HALF_DAY: HOURS_PER_HALF_DAY,
    VALUE_ABSENT: 0.0,
}

# Weekdays follow datetime.weekday(): Monday=0 ... Sunday=6
MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)

# Sprint schedule defaults (Sunday-Thursday work week)
DEFAULT_WEEKEND_DAYS = (FRIDAY, SATURDAY)
DEFAULT_WEEK_START_DAY = SUNDAY
DEFAULT_SYNTHETIC_ANCHOR = date(2025, 7, 27)  # Sprint 1 start
DEFAULT_SPRINT_LENGTH_WEEKS = 2
DEFAULT_WORKING_DAYS_PER_WEEK = 5
DEFAULT_MAX_SYNTHETIC_SPRINTS = 260  # ~10 years of two-week sprints

# Completion status
STATUS_EXCELLENT = "excellent"
STATUS_GOOD = "good"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"

COMPLETION_STATUSES = [STATUS_EXCELLENT, STATUS_GOOD, STATUS_WARNING, STATUS_CRITICAL]

# Lower bounds (inclusive) of each completion band
DEFAULT_EXCELLENT_THRESHOLD = 95
DEFAULT_GOOD_THRESHOLD = 85
DEFAULT_WARNING_THRESHOLD = 70

STATUS_ICONS = {
    STATUS_EXCELLENT: '🟢',
    STATUS_GOOD: '🔵',
    STATUS_WARNING: '🟡',
    STATUS_CRITICAL: '🔴',
}

# Navigation
MODE_SPRINT = "sprint"
MODE_WEEK = "week"

# Window sources (which resolution tier produced the window)
SOURCE_AUTHORITATIVE = "authoritative"
SOURCE_SYNTHETIC = "synthetic"
SOURCE_CALENDAR_WEEK = "calendar_week"

# Sprint length limits for validation
MIN_SPRINT_LENGTH_WEEKS = 1
MAX_SPRINT_LENGTH_WEEKS = 4

# Date key format used in snapshots and the store
DATE_KEY_FORMAT = '%Y-%m-%d'
