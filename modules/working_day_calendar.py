"""
Working Day Calendar Module
Pure calendar arithmetic over a configurable work-week mask
"""
from datetime import date, timedelta
from typing import FrozenSet, Iterable, Iterator, List, Optional

from models.config import EngineConfig
from models.schedule import WorkDay
from utils.constants import DEFAULT_WEEK_START_DAY, DEFAULT_WEEKEND_DAYS
from utils.date_utils import is_past, is_today, start_of_week
from utils.errors import ConfigurationError

ONE_DAY = timedelta(days=1)


class WorkingDayCalendar:
    """
    Produces working dates for a date range.

    The week-end (non-working weekdays) and week start are injected once
    at construction; they differ by locale so nothing here assumes
    Saturday/Sunday.
    """

    def __init__(
        self,
        weekend_days: Iterable[int] = DEFAULT_WEEKEND_DAYS,
        week_start_day: int = DEFAULT_WEEK_START_DAY
    ):
        self.weekend_days: FrozenSet[int] = frozenset(weekend_days)
        if len(self.weekend_days) >= 7:
            raise ConfigurationError("Week-end cannot cover every day of the week")
        self.week_start_day = week_start_day

    @classmethod
    def from_config(cls, config: EngineConfig) -> 'WorkingDayCalendar':
        return cls(config.weekend_days, config.week_start_day)

    def is_working_day(self, day: date, mask: Optional[FrozenSet[int]] = None) -> bool:
        weekend = self.weekend_days if mask is None else mask
        return day.weekday() not in weekend

    def iter_working_days(
        self,
        start: date,
        end: date,
        mask: Optional[FrozenSet[int]] = None
    ) -> Iterator[date]:
        current = start
        while current <= end:
            if self.is_working_day(current, mask):
                yield current
            if current == end:
                break
            current += ONE_DAY

    def working_days(
        self,
        start: date,
        end: date,
        mask: Optional[FrozenSet[int]] = None
    ) -> List[date]:
        """
        Ordered working dates in [start, end], both ends inclusive

        Args:
            start: First date of the range
            end: Last date of the range
            mask: Week-end weekdays overriding the configured ones (optional)

        Returns:
            List of dates; empty when start > end or nothing in range is a working day
        """
        if start > end:
            return []
        return list(self.iter_working_days(start, end, mask))

    def group_by_week(self, days: Iterable[date]) -> List[List[date]]:
        """
        Split an ordered sequence of days into week buckets.
        A new bucket starts whenever a day belongs to a different week
        (by the configured start-of-week day) than the previous one.
        """
        weeks: List[List[date]] = []
        current_week: List[date] = []
        current_week_start = None

        for day in days:
            week_start = start_of_week(day, self.week_start_day)
            if current_week and week_start != current_week_start:
                weeks.append(current_week)
                current_week = []
            current_week.append(day)
            current_week_start = week_start

        if current_week:
            weeks.append(current_week)

        return weeks

    def week_containing(self, day: date) -> List[date]:
        """All seven calendar dates of the week containing a date"""
        first = start_of_week(day, self.week_start_day)
        return [first + timedelta(days=i) for i in range(7)]

    def next_working_day(self, day: date) -> date:
        """First working day strictly after a date"""
        current = day + ONE_DAY
        while not self.is_working_day(current):
            current += ONE_DAY
        return current

    def add_working_days(self, start: date, count: int) -> date:
        """
        Date of the `count`-th working day counting from `start`
        (start itself counts when it is a working day)
        """
        if count <= 0:
            return start
        current = start
        added = 1 if self.is_working_day(current) else 0
        while added < count:
            current += ONE_DAY
            if self.is_working_day(current):
                added += 1
        return current

    def working_days_between(self, start: date, end: date) -> int:
        """Number of working days in [start, end)"""
        if start >= end:
            return 0
        return len(self.working_days(start, end - ONE_DAY))

    def describe(self, day: date, today: Optional[date] = None) -> WorkDay:
        """Day descriptor with working/today/past flags"""
        if today is None:
            today = date.today()
        return WorkDay(
            date=day,
            day_of_week=day.weekday(),
            is_working_day=self.is_working_day(day),
            is_today=is_today(day, today),
            is_past=is_past(day, today),
        )

    def describe_range(self, start: date, end: date, today: Optional[date] = None) -> List[WorkDay]:
        """Descriptors for every calendar date in [start, end]"""
        days = []
        current = start
        while current <= end:
            days.append(self.describe(current, today))
            current += ONE_DAY
        return days
