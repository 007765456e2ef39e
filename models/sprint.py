"""
Sprint data models with validation
"""
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.constants import (
    MODE_SPRINT,
    MODE_WEEK,
    SOURCE_AUTHORITATIVE,
    SOURCE_CALENDAR_WEEK,
)


class SprintDefinition(BaseModel):
    """
    Manager-configured sprint metadata (authoritative, may be stale)
    """
    model_config = ConfigDict(frozen=True)

    sprint_number: int = Field(..., ge=1, description="Sequential sprint identifier")
    start_date: date = Field(..., description="First day of the sprint")
    end_date: date = Field(..., description="Last day of the sprint (inclusive)")
    sprint_name: str = ""

    @field_validator('end_date')
    @classmethod
    def validate_range(cls, v, info):
        """Ensure the sprint does not end before it starts"""
        start = info.data.get('start_date')
        if start and v < start:
            raise ValueError(f"Sprint end {v} is before start {start}")
        return v

    @property
    def length_days(self) -> int:
        """Inclusive calendar length"""
        return (self.end_date - self.start_date).days + 1

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def to_dict(self) -> dict:
        return {
            'SprintNumber': self.sprint_number,
            'SprintName': self.sprint_name,
            'SprintStartDt': self.start_date,
            'SprintEndDt': self.end_date,
        }


class NavigationState(BaseModel):
    """
    Which period the viewer is looking at, relative to the current one.
    `mode` selects the unit of `offset`.
    """
    model_config = ConfigDict(frozen=True)

    mode: Literal["sprint", "week"] = MODE_SPRINT
    offset: int = 0

    def next(self) -> 'NavigationState':
        return self.model_copy(update={'offset': self.offset + 1})

    def previous(self) -> 'NavigationState':
        return self.model_copy(update={'offset': self.offset - 1})

    def reset(self) -> 'NavigationState':
        return self.model_copy(update={'offset': 0})

    def switch_mode(self, mode: str) -> 'NavigationState':
        """Change unit; offsets are not comparable across units so it resets"""
        if mode not in (MODE_SPRINT, MODE_WEEK):
            raise ValueError(f"Unknown navigation mode: {mode}")
        return NavigationState(mode=mode, offset=0)


class SprintProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    working_days_elapsed: int
    working_days_remaining: int
    days_remaining: int
    progress_percentage: int


class ResolvedWindow(BaseModel):
    """
    Result of window resolution: the active period and where it came from
    """
    model_config = ConfigDict(frozen=True)

    mode: Literal["sprint", "week"]
    source: Literal["authoritative", "synthetic", "calendar_week"]
    start_date: date
    end_date: date
    working_days: List[date] = Field(default_factory=list)
    sprint_number: Optional[int] = None

    @property
    def is_fallback(self) -> bool:
        return self.mode == MODE_SPRINT and self.source != SOURCE_AUTHORITATIVE

    @property
    def label(self) -> str:
        if self.source == SOURCE_CALENDAR_WEEK:
            return "Week"
        if self.sprint_number is not None:
            return f"Sprint {self.sprint_number}"
        return "Current Sprint"

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def progress(self, today: date) -> SprintProgress:
        """
        Progress through the window measured in working days
        """
        total = len(self.working_days)
        elapsed = sum(1 for day in self.working_days if day < today)
        remaining = sum(1 for day in self.working_days if day > today)
        days_remaining = max(0, (self.end_date - today).days)
        percentage = min(100, int(elapsed * 100 / total + 0.5)) if total else 0
        return SprintProgress(
            working_days_elapsed=elapsed,
            working_days_remaining=remaining,
            days_remaining=days_remaining,
            progress_percentage=percentage,
        )


class ScheduledSprint(BaseModel):
    """One row of the expected synthetic sprint schedule"""
    model_config = ConfigDict(frozen=True)

    sprint_number: int
    start_date: date
    end_date: date
    status: Literal["completed", "current", "upcoming"]


