"""
Schedule aggregation: hours, completion and utilization per member and team
"""
import logging
import math
from datetime import date
from typing import Dict, Iterable, Mapping, Optional, Sequence

import pandas as pd

from models.config import EngineConfig
from models.schedule import ScheduleEntry, ScheduleSnapshot
from models.summary import MemberSummary, TeamSummary
from utils.constants import (
    COMPLETION_STATUSES,
    DEFAULT_HOURS_BY_VALUE,
    STATUS_CRITICAL,
    STATUS_EXCELLENT,
    STATUS_GOOD,
    STATUS_ICONS,
    STATUS_WARNING,
    VALUE_ABSENT,
    VALUE_FULL_DAY,
    VALUE_HALF_DAY,
)
from utils.date_utils import format_date_key

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    'MemberId', 'Member', 'ActualHours', 'PotentialHours', 'CompletionPct',
    'UtilizationPct', 'Status', 'DaysFilled', 'MissingDays', 'Status_Icon'
]


def round_percentage(value: float) -> int:
    """Round half up (2.5 -> 3), unlike round()'s banker's rounding"""
    return int(math.floor(value + 0.5))


def value_to_hours(value: Optional[str], hours_by_value: Mapping[str, float] = None) -> float:
    """
    Convert a schedule entry value to hours
    '1' = 7 hours, '0.5' = 3.5 hours, 'X' = 0 hours.
    Missing or unknown values count as 0.
    """
    mapping = hours_by_value or DEFAULT_HOURS_BY_VALUE
    if not value:
        return 0.0
    if value not in mapping:
        logger.warning(f"Unknown schedule value {value!r}, counting as 0 hours")
        return 0.0
    return mapping[value]


def hours_to_value(hours: float) -> str:
    """
    Convert hours back to the nearest schedule value at or below them
    """
    if hours >= DEFAULT_HOURS_BY_VALUE[VALUE_FULL_DAY]:
        return VALUE_FULL_DAY
    if hours >= DEFAULT_HOURS_BY_VALUE[VALUE_HALF_DAY]:
        return VALUE_HALF_DAY
    return VALUE_ABSENT


class ScheduleAggregator:
    """
    Pure summaries over schedule entries. Inputs are read, never modified.
    """

    def __init__(self, config: EngineConfig = None):
        config = config or EngineConfig()
        self.hours_by_value = dict(config.hours_by_value)
        self.thresholds = config.status_thresholds

    @property
    def hours_per_day(self) -> float:
        return self.hours_by_value[VALUE_FULL_DAY]

    def classify(self, completion_percentage: int) -> str:
        """Completion status band (lower bounds inclusive)"""
        if completion_percentage >= self.thresholds.excellent:
            return STATUS_EXCELLENT
        if completion_percentage >= self.thresholds.good:
            return STATUS_GOOD
        if completion_percentage >= self.thresholds.warning:
            return STATUS_WARNING
        return STATUS_CRITICAL

    def summarize_member(
        self,
        member_id: int,
        entries: Mapping[str, ScheduleEntry],
        working_days: Sequence[date]
    ) -> MemberSummary:
        """
        Summarize one member over a window

        Args:
            member_id: Team member identifier
            entries: Member's entries keyed by ISO date
            working_days: Working days of the active window

        Returns:
            MemberSummary; entries outside the working days are ignored
        """
        total_days = len(working_days)
        potential_hours = total_days * self.hours_per_day

        actual_hours = 0.0
        filled = 0
        for day in working_days:
            entry = entries.get(format_date_key(day))
            if entry is None or entry.value is None:
                continue
            filled += 1
            actual_hours += value_to_hours(entry.value, self.hours_by_value)

        if total_days == 0:
            completion = 0
        else:
            completion = round_percentage(filled / total_days * 100)

        utilization = round_percentage(actual_hours / potential_hours * 100) if potential_hours > 0 else 0

        return MemberSummary(
            member_id=member_id,
            actual_hours=actual_hours,
            potential_hours=potential_hours,
            completion_percentage=completion,
            utilization_percentage=utilization,
            status=self.classify(completion),
            working_days_filled=filled,
            total_working_days=total_days,
        )

    def summarize_team(self, member_summaries: Iterable[MemberSummary]) -> TeamSummary:
        """
        Team totals over member summaries. Zero members gives an all-zero summary.
        """
        summaries = list(member_summaries)
        if not summaries:
            return TeamSummary(status_counts={status: 0 for status in COMPLETION_STATUSES})

        max_capacity = sum(s.potential_hours for s in summaries)
        actual = sum(s.actual_hours for s in summaries)
        filled = sum(s.working_days_filled for s in summaries)
        possible = sum(s.total_working_days for s in summaries)

        status_counts = {status: 0 for status in COMPLETION_STATUSES}
        for summary in summaries:
            status_counts[summary.status] += 1

        return TeamSummary(
            total_members=len(summaries),
            max_capacity_hours=max_capacity,
            actual_hours=actual,
            utilization_percentage=round_percentage(actual / max_capacity * 100) if max_capacity > 0 else 0,
            completion_percentage=round_percentage(filled / possible * 100) if possible > 0 else 0,
            status_counts=status_counts,
            member_summaries=summaries,
        )

    def summarize_snapshot(
        self,
        snapshot: ScheduleSnapshot,
        working_days: Sequence[date],
        member_ids: Optional[Iterable[int]] = None
    ) -> TeamSummary:
        """
        Summaries for every member in a snapshot, plus any listed members
        that have no entries yet
        """
        ids = list(member_ids) if member_ids is not None else []
        for member_id in snapshot.member_ids:
            if member_id not in ids:
                ids.append(member_id)

        member_summaries = [
            self.summarize_member(member_id, snapshot.member_entries(member_id), working_days)
            for member_id in ids
        ]
        return self.summarize_team(member_summaries)


def get_summary_dataframe(
    member_summaries: Iterable[MemberSummary],
    member_names: Dict[int, str] = None
) -> pd.DataFrame:
    """
    Member summaries formatted as a DataFrame for display,
    members needing attention first
    """
    member_names = member_names or {}
    rows = []
    for summary in member_summaries:
        row = summary.to_dict()
        row['Member'] = member_names.get(summary.member_id, str(summary.member_id))
        row['Status_Icon'] = STATUS_ICONS.get(summary.status, '')
        rows.append(row)

    if not rows:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    summary_df = pd.DataFrame(rows)[SUMMARY_COLUMNS]
    summary_df = summary_df.sort_values(['CompletionPct', 'MemberId'], ascending=[True, True])
    return summary_df.reset_index(drop=True)
