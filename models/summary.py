"""
Derived summary models (computed on read, never persisted)
"""
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

CompletionStatus = Literal["excellent", "good", "warning", "critical"]


class MemberSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    member_id: int
    actual_hours: float = 0.0
    potential_hours: float = 0.0
    completion_percentage: int = 0
    utilization_percentage: int = 0
    status: CompletionStatus = "critical"
    working_days_filled: int = 0
    total_working_days: int = 0

    @property
    def missing_days(self) -> int:
        return max(0, self.total_working_days - self.working_days_filled)

    def to_dict(self) -> dict:
        return {
            'MemberId': self.member_id,
            'ActualHours': self.actual_hours,
            'PotentialHours': self.potential_hours,
            'CompletionPct': self.completion_percentage,
            'UtilizationPct': self.utilization_percentage,
            'Status': self.status,
            'DaysFilled': self.working_days_filled,
            'MissingDays': self.missing_days,
        }


class TeamSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_members: int = 0
    max_capacity_hours: float = 0.0
    actual_hours: float = 0.0
    utilization_percentage: int = 0
    completion_percentage: int = 0
    status_counts: Dict[str, int] = Field(default_factory=dict)
    member_summaries: List[MemberSummary] = Field(default_factory=list)
