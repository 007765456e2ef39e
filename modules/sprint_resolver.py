"""
Sprint Boundary Resolver Module
Determines the active sprint (or week) window and its working days.

Resolution falls through three tiers, each trading fidelity for availability:
1. the authoritative sprint definition, when it contains today
2. synthetic sprints counted forward from a configured anchor date
3. the calendar week containing today
"""
import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from models.config import EngineConfig
from models.sprint import NavigationState, ResolvedWindow, ScheduledSprint, SprintDefinition
from modules.working_day_calendar import WorkingDayCalendar
from utils.constants import (
    MODE_SPRINT,
    MODE_WEEK,
    SOURCE_AUTHORITATIVE,
    SOURCE_CALENDAR_WEEK,
    SOURCE_SYNTHETIC,
)
from utils.date_utils import start_of_week

logger = logging.getLogger(__name__)


class SyntheticAnchorError(Exception):
    """Synthetic sprint boundaries could not be resolved for a date"""


class SprintBoundaryResolver:
    """
    Resolves the active date window for a navigation state
    """

    def __init__(self, config: EngineConfig = None, calendar: WorkingDayCalendar = None):
        self.config = config or EngineConfig()
        self.calendar = calendar or WorkingDayCalendar.from_config(self.config)

    def resolve_active_window(
        self,
        definition: Optional[SprintDefinition],
        nav: NavigationState,
        today: date
    ) -> List[date]:
        """
        Working days of the active window. Never raises for valid dates.
        """
        return self.resolve(definition, nav, today).working_days

    def resolve(
        self,
        definition: Optional[SprintDefinition],
        nav: NavigationState = None,
        today: date = None
    ) -> ResolvedWindow:
        """
        Resolve the active window with its metadata

        Args:
            definition: Authoritative sprint definition (may be None or stale)
            nav: Navigation state (defaults to current sprint)
            today: Reference date (defaults to today)

        Returns:
            ResolvedWindow describing the window and which tier produced it
        """
        if nav is None:
            nav = NavigationState()
        if today is None:
            today = date.today()

        if nav.mode == MODE_WEEK:
            return self._calendar_week_window(today, nav.offset, MODE_WEEK)

        if definition is not None and definition.contains(today):
            try:
                window = self._authoritative_window(definition, nav.offset)
            except OverflowError:
                logger.warning(f"Offset {nav.offset} from sprint {definition.sprint_number} is out of date range")
            else:
                logger.debug(f"Resolved {window.label} from sprint definition: {window.start_date} to {window.end_date}")
                return window

        if definition is None:
            logger.info("No sprint definition available, using synthetic sprint anchor")
        elif not definition.contains(today):
            logger.warning(
                f"Sprint {definition.sprint_number} ({definition.start_date} to {definition.end_date}) "
                f"does not contain {today}, using synthetic sprint anchor"
            )

        try:
            window = self._synthetic_window(today, nav.offset)
        except (SyntheticAnchorError, OverflowError) as exc:
            logger.error(f"Synthetic sprint resolution failed: {exc}")
            window = None

        if window is None or not window.working_days:
            logger.warning(f"Falling back to calendar week containing {today}")
            return self._calendar_week_window(today, nav.offset, MODE_SPRINT)

        logger.debug(f"Resolved {window.label} from synthetic anchor: {window.start_date} to {window.end_date}")
        return window

    def locate_synthetic_sprint(self, today: date) -> Tuple[int, date, date]:
        """
        Find the synthetic sprint covering a date

        Sprint 1 starts on the anchor. Each sprint ends on its N-th working
        day (N = weeks x working days per week) and the next one starts on
        the following working day. Non-working days between two sprints
        belong to the upcoming one.

        Returns:
            Tuple of (sprint_number, start_date, end_date)

        Raises:
            SyntheticAnchorError: If today precedes the anchor or the
                iteration cap is exceeded
        """
        anchor = self.config.synthetic_anchor_date
        if today < anchor:
            raise SyntheticAnchorError(f"{today} is before synthetic anchor {anchor}")

        per_sprint = self.config.working_days_per_sprint
        cap = self.config.max_synthetic_sprints

        sprint_number = 1
        start = anchor
        end = self.calendar.add_working_days(start, per_sprint)

        while today > end:
            if sprint_number >= cap:
                raise SyntheticAnchorError(
                    f"No synthetic sprint contains {today} within {cap} sprints of anchor {anchor}"
                )
            sprint_number += 1
            start = self.calendar.next_working_day(end)
            end = self.calendar.add_working_days(start, per_sprint)

        return sprint_number, start, end

    def expected_schedule(self, today: date = None, count: int = 5) -> List[ScheduledSprint]:
        """
        The first `count` synthetic sprints with their status relative to today
        """
        if today is None:
            today = date.today()

        schedule = []
        per_sprint = self.config.working_days_per_sprint
        start = self.config.synthetic_anchor_date
        for sprint_number in range(1, count + 1):
            end = self.calendar.add_working_days(start, per_sprint)
            if end < today:
                status = 'completed'
            elif start <= today <= end:
                status = 'current'
            else:
                status = 'upcoming'
            schedule.append(ScheduledSprint(
                sprint_number=sprint_number,
                start_date=start,
                end_date=end,
                status=status,
            ))
            start = self.calendar.next_working_day(end)

        return schedule

    def _authoritative_window(self, definition: SprintDefinition, offset: int) -> ResolvedWindow:
        shift = timedelta(days=offset * definition.length_days)
        start = definition.start_date + shift
        end = definition.end_date + shift
        return ResolvedWindow(
            mode=MODE_SPRINT,
            source=SOURCE_AUTHORITATIVE,
            start_date=start,
            end_date=end,
            working_days=self.calendar.working_days(start, end),
            sprint_number=_sprint_number(definition.sprint_number, offset),
        )

    def _synthetic_window(self, today: date, offset: int) -> ResolvedWindow:
        sprint_number, start, end = self.locate_synthetic_sprint(today)
        shift = timedelta(days=offset * self.config.sprint_length_weeks * 7)
        start += shift
        end += shift
        return ResolvedWindow(
            mode=MODE_SPRINT,
            source=SOURCE_SYNTHETIC,
            start_date=start,
            end_date=end,
            working_days=self.calendar.working_days(start, end),
            sprint_number=_sprint_number(sprint_number, offset),
        )

    def _calendar_week_window(self, today: date, offset: int, mode: str) -> ResolvedWindow:
        try:
            start = start_of_week(today, self.calendar.week_start_day) + timedelta(weeks=offset)
            end = start + timedelta(days=6)
        except OverflowError:
            # clamp to the first or last seven representable days
            logger.warning(f"Week offset {offset} from {today} is out of date range, clamping")
            if offset > 0:
                start, end = date.max - timedelta(days=6), date.max
            else:
                start, end = date.min, date.min + timedelta(days=6)
        return ResolvedWindow(
            mode=mode,
            source=SOURCE_CALENDAR_WEEK,
            start_date=start,
            end_date=end,
            working_days=self.calendar.working_days(start, end),
        )


def _sprint_number(base: int, offset: int) -> Optional[int]:
    number = base + offset
    return number if number >= 1 else None
