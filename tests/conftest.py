"""
Pytest configuration and shared fixtures
"""
import asyncio
import sys
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from models.config import EngineConfig
from models.schedule import ScheduleEntry
from modules.schedule_store import ChangeNotifier, EntryMap
from modules.working_day_calendar import WorkingDayCalendar
from utils.date_utils import format_date_key
from utils.errors import WriteError


def make_entries(member_id: int, values: Dict[date, Optional[str]]) -> Dict[str, ScheduleEntry]:
    """Member entries keyed by ISO date"""
    return {
        format_date_key(day): ScheduleEntry(member_id=member_id, date=day, value=value)
        for day, value in values.items()
    }


class FakeScheduleStore:
    """
    Scripted in-memory store

    - fetch_gates: each fetch pops the next gate (if any) and waits on it
    - fetch_failures: each fetch pops the next failure (if any) and raises it
    - write_gate: every write waits on it when set
    - failing_writes: values whose writes raise WriteError
    - subscribe_failures: each subscribe pops the next failure (if any) and raises it
    """

    def __init__(self, entries: Optional[EntryMap] = None):
        self.entries: Dict[int, Dict[str, ScheduleEntry]] = {
            member_id: dict(member_entries) for member_id, member_entries in (entries or {}).items()
        }
        self.notifier = ChangeNotifier()
        self.fetch_calls: List[tuple] = []
        self.writes: List[tuple] = []
        self.write_attempts: List[tuple] = []
        self.fetch_gates: List[Optional[asyncio.Event]] = []
        self.fetch_failures: List[Optional[Exception]] = []
        self.write_gate: Optional[asyncio.Event] = None
        self.failing_writes: set = set()
        self.subscribe_failures: List[Exception] = []
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0

    async def fetch_entries(self, team_id, start_date, end_date) -> EntryMap:
        self.fetch_calls.append((team_id, start_date, end_date))
        gate = self.fetch_gates.pop(0) if self.fetch_gates else None
        failure = self.fetch_failures.pop(0) if self.fetch_failures else None
        if gate is not None:
            await gate.wait()
        if failure is not None:
            raise failure
        return {
            member_id: {key: entry for key, entry in member_entries.items() if start_date <= entry.date <= end_date}
            for member_id, member_entries in self.entries.items()
        }

    async def write_entry(self, member_id, day, value, reason=None) -> None:
        self.write_attempts.append((member_id, day, value))
        if self.write_gate is not None:
            await self.write_gate.wait()
        if value in self.failing_writes:
            raise WriteError(f"store rejected {value!r}")
        self.writes.append((member_id, day, value, reason))
        member_entries = self.entries.setdefault(member_id, {})
        if value is None:
            member_entries.pop(format_date_key(day), None)
        else:
            member_entries[format_date_key(day)] = ScheduleEntry(
                member_id=member_id, date=day, value=value, reason=reason
            )

    def subscribe(self, team_id, start_date, end_date, on_change):
        self.subscribe_calls += 1
        if self.subscribe_failures:
            raise self.subscribe_failures.pop(0)
        unsubscribe = self.notifier.subscribe(team_id, start_date, end_date, on_change)

        def release():
            self.unsubscribe_calls += 1
            unsubscribe()

        return release

    def push_change(self, day: date, team_id: Optional[int] = None) -> int:
        return self.notifier.notify(team_id, day)


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def calendar(config):
    return WorkingDayCalendar.from_config(config)


@pytest.fixture
def sprint_one_days(calendar):
    """Working days of synthetic sprint 1 (Jul 27 - Aug 07, 2025)"""
    return calendar.working_days(date(2025, 7, 27), date(2025, 8, 7))


@pytest.fixture
def fake_store():
    return FakeScheduleStore()
