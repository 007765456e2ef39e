"""
Schedule data models: entries, day descriptors and the session snapshot
"""
import datetime as dt
from types import MappingProxyType
from typing import Dict, Iterator, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.date_utils import format_date_key

ScheduleValue = Literal["1", "0.5", "X"]


class ScheduleEntry(BaseModel):
    """
    One member's status for one date.
    Immutable: updates replace the entry, never mutate it.
    """
    model_config = ConfigDict(frozen=True)

    member_id: int = Field(..., description="Team member identifier")
    date: dt.date = Field(..., description="Calendar date of the entry")
    value: Optional[ScheduleValue] = Field(default=None, description="'1' full day, '0.5' half day, 'X' absent")
    reason: Optional[str] = None

    @property
    def date_key(self) -> str:
        return format_date_key(self.date)

    def to_dict(self) -> dict:
        return {
            'MemberId': self.member_id,
            'Date': self.date_key,
            'Value': self.value,
            'Reason': self.reason,
        }


class WorkDay(BaseModel):
    """Calendar date with its derived attributes"""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    day_of_week: int = Field(..., ge=0, le=6, description="Monday=0 ... Sunday=6")
    is_working_day: bool
    is_today: bool = False
    is_past: bool = False

    @property
    def is_weekend(self) -> bool:
        return not self.is_working_day

    @property
    def date_key(self) -> str:
        return format_date_key(self.date)


class ScheduleSnapshot:
    """
    Read-only view of schedule entries for one (team, date range) session.

    Keyed member_id -> date key -> ScheduleEntry. Mutating operations
    return a new snapshot; existing snapshots never change, so readers may
    hold on to one safely while the coordinator moves on.
    """

    __slots__ = ('team_id', 'start_date', 'end_date', '_entries')

    def __init__(
        self,
        team_id: int,
        start_date: dt.date,
        end_date: dt.date,
        entries: Optional[Mapping[int, Mapping[str, ScheduleEntry]]] = None
    ):
        self.team_id = team_id
        self.start_date = start_date
        self.end_date = end_date
        self._entries: Dict[int, Mapping[str, ScheduleEntry]] = {
            member_id: MappingProxyType(dict(member_entries))
            for member_id, member_entries in (entries or {}).items()
        }

    @property
    def entries(self) -> Mapping[int, Mapping[str, ScheduleEntry]]:
        return MappingProxyType(self._entries)

    @property
    def member_ids(self) -> List[int]:
        return list(self._entries.keys())

    def member_entries(self, member_id: int) -> Mapping[str, ScheduleEntry]:
        """Entries for one member (empty mapping if none)"""
        return self._entries.get(member_id, MappingProxyType({}))

    def get(self, member_id: int, day: dt.date) -> Optional[ScheduleEntry]:
        return self.member_entries(member_id).get(format_date_key(day))

    def get_value(self, member_id: int, day: dt.date) -> Optional[str]:
        entry = self.get(member_id, day)
        return entry.value if entry else None

    def covers(self, day: dt.date) -> bool:
        return self.start_date <= day <= self.end_date

    def with_entry(
        self,
        member_id: int,
        day: dt.date,
        value: Optional[str],
        reason: Optional[str] = None
    ) -> 'ScheduleSnapshot':
        """
        Return a copy with one entry replaced. A None value clears the entry.
        """
        key = format_date_key(day)
        member_entries = dict(self.member_entries(member_id))
        if value is None:
            member_entries.pop(key, None)
        else:
            member_entries[key] = ScheduleEntry(member_id=member_id, date=day, value=value, reason=reason)

        entries = dict(self._entries)
        entries[member_id] = member_entries
        return ScheduleSnapshot(self.team_id, self.start_date, self.end_date, entries)

    def __iter__(self) -> Iterator[ScheduleEntry]:
        for member_entries in self._entries.values():
            yield from member_entries.values()

    def __len__(self) -> int:
        return sum(len(member_entries) for member_entries in self._entries.values())

    def __repr__(self) -> str:
        return (
            f"ScheduleSnapshot(team_id={self.team_id}, "
            f"range={self.start_date}..{self.end_date}, entries={len(self)})"
        )
