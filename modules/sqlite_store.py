"""
SQLite-backed schedule store.

Implements the store contract (fetch / write / subscribe) plus the
team-member and sprint-calendar tables that feed the engine. Blocking
SQLite calls run in a worker thread; change notifications fire on the
caller's event loop after a write commits.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import date, datetime
from typing import Optional

import pandas as pd

from models.schedule import ScheduleEntry
from models.sprint import SprintDefinition
from models.validation import validate_schedule_entry
from modules.schedule_store import ChangeCallback, ChangeNotifier, EntryMap, Unsubscribe
from modules.sqlite_db import connect, get_db_path, initialize_db
from utils.date_utils import format_date_key, to_date
from utils.errors import LoadError, WriteError

logger = logging.getLogger(__name__)

MEMBER_COLUMNS = ['Id', 'Name', 'TeamId', 'IsManager']


class SqliteScheduleStore:
    """Schedule store over a local SQLite database"""

    def __init__(self, db_path: Optional[str] = None, notifier: Optional[ChangeNotifier] = None):
        self.db_path = get_db_path(db_path)
        self.notifier = notifier or ChangeNotifier()
        conn = connect(self.db_path)
        try:
            initialize_db(conn)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Store contract
    # ------------------------------------------------------------------
    async def fetch_entries(self, team_id: int, start_date: date, end_date: date) -> EntryMap:
        try:
            entries_df = await asyncio.to_thread(self.load_entries, team_id, start_date, end_date)
        except (sqlite3.Error, pd.errors.DatabaseError) as exc:
            logger.error(f"Loading entries for team {team_id} failed: {exc}")
            raise LoadError(f"Failed to load schedule for team {team_id}: {exc}") from exc
        return entries_from_dataframe(entries_df)

    async def write_entry(
        self,
        member_id: int,
        day: date,
        value: Optional[str],
        reason: Optional[str] = None
    ) -> None:
        try:
            team_id = await asyncio.to_thread(self.save_entry, member_id, day, value, reason)
        except sqlite3.Error as exc:
            logger.error(f"Saving entry for member {member_id} on {day} failed: {exc}")
            raise WriteError(f"Failed to save schedule entry for member {member_id} on {day}: {exc}") from exc
        self.notifier.notify(team_id, day, member_id)

    def subscribe(
        self,
        team_id: int,
        start_date: date,
        end_date: date,
        on_change: ChangeCallback
    ) -> Unsubscribe:
        return self.notifier.subscribe(team_id, start_date, end_date, on_change)

    # ------------------------------------------------------------------
    # Schedule entries
    # ------------------------------------------------------------------
    def load_entries(self, team_id: int, start_date: date, end_date: date) -> pd.DataFrame:
        conn = connect(self.db_path)
        try:
            return pd.read_sql_query(
                """
                SELECT
                  e.member_id AS MemberId,
                  e.date AS Date,
                  e.value AS Value,
                  e.reason AS Reason
                FROM schedule_entries e
                JOIN team_members m ON m.id = e.member_id
                WHERE m.team_id = ?
                  AND e.date BETWEEN ? AND ?
                ORDER BY e.member_id, e.date
                """,
                conn,
                params=(team_id, format_date_key(start_date), format_date_key(end_date)),
            )
        finally:
            conn.close()

    def save_entry(
        self,
        member_id: int,
        day: date,
        value: Optional[str],
        reason: Optional[str] = None
    ) -> Optional[int]:
        """
        Upsert (or delete, when value is None) one entry

        Returns:
            The member's team id, or None if the member is unknown
        """
        conn = connect(self.db_path)
        try:
            date_key = format_date_key(day)
            if value is None:
                conn.execute(
                    "DELETE FROM schedule_entries WHERE member_id = ? AND date = ?",
                    (member_id, date_key),
                )
            else:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO schedule_entries (member_id, date, value, reason, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (member_id, date_key, value, reason or None, datetime.now().strftime('%Y-%m-%d %H:%M:%S')),
                )
            conn.commit()
            row = conn.execute("SELECT team_id FROM team_members WHERE id = ?", (member_id,)).fetchone()
            return row['team_id'] if row else None
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Team members
    # ------------------------------------------------------------------
    def add_team_member(
        self,
        name: str,
        team_id: int,
        is_manager: bool = False,
        member_id: Optional[int] = None
    ) -> int:
        """Insert a team member and return their id"""
        conn = connect(self.db_path)
        try:
            cursor = conn.execute(
                "INSERT INTO team_members (id, name, team_id, is_manager) VALUES (?, ?, ?, ?)",
                (member_id, name, team_id, int(is_manager)),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def list_team_members(self, team_id: int) -> pd.DataFrame:
        conn = connect(self.db_path)
        try:
            members_df = pd.read_sql_query(
                """
                SELECT
                  id AS Id,
                  name AS Name,
                  team_id AS TeamId,
                  is_manager AS IsManager
                FROM team_members
                WHERE team_id = ?
                ORDER BY id
                """,
                conn,
                params=(team_id,),
            )
        finally:
            conn.close()
        if members_df.empty:
            return pd.DataFrame(columns=MEMBER_COLUMNS)
        members_df['IsManager'] = members_df['IsManager'].astype(bool)
        return members_df

    # ------------------------------------------------------------------
    # Sprint calendar
    # ------------------------------------------------------------------
    def save_sprint_definition(self, definition: SprintDefinition) -> None:
        conn = connect(self.db_path)
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO sprint_calendar (sprint_number, sprint_name, sprint_start_dt, sprint_end_dt)
                VALUES (?, ?, ?, ?)
                """,
                (
                    definition.sprint_number,
                    definition.sprint_name or f"Sprint {definition.sprint_number}",
                    format_date_key(definition.start_date),
                    format_date_key(definition.end_date),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def load_sprint_calendar(self) -> pd.DataFrame:
        conn = connect(self.db_path)
        try:
            return pd.read_sql_query(
                """
                SELECT
                  sprint_number AS SprintNumber,
                  sprint_name AS SprintName,
                  sprint_start_dt AS SprintStartDt,
                  sprint_end_dt AS SprintEndDt
                FROM sprint_calendar
                ORDER BY sprint_start_dt
                """,
                conn,
            )
        finally:
            conn.close()

    def load_sprint_definition(self, today: Optional[date] = None) -> Optional[SprintDefinition]:
        """
        The sprint containing today, else the most recent one (stale),
        else None when nothing is configured
        """
        if today is None:
            today = date.today()

        definitions = []
        for _, row in self.load_sprint_calendar().iterrows():
            try:
                definitions.append(SprintDefinition(
                    sprint_number=int(row['SprintNumber']),
                    sprint_name=row['SprintName'] or '',
                    start_date=to_date(row['SprintStartDt']),
                    end_date=to_date(row['SprintEndDt']),
                ))
            except ValueError as exc:
                logger.warning(f"Skipping invalid sprint calendar row {row['SprintNumber']}: {exc}")

        if not definitions:
            return None

        for definition in definitions:
            if definition.contains(today):
                return definition

        return max(definitions, key=lambda d: d.start_date)


def entries_from_dataframe(entries_df: pd.DataFrame) -> EntryMap:
    """
    Build the member -> date key -> entry mapping from store rows,
    skipping rows that fail validation
    """
    entries: EntryMap = {}
    for _, row in entries_df.iterrows():
        reason = row.get('Reason')
        record = {
            'member_id': row.get('MemberId'),
            'date': row.get('Date'),
            'value': row.get('Value'),
            'reason': None if reason is None or pd.isna(reason) else str(reason),
        }
        is_valid, errors = validate_schedule_entry(record)
        if not is_valid:
            logger.warning(f"Skipping invalid schedule row {record}: {'; '.join(errors)}")
            continue

        day = to_date(record['date'])
        member_id = int(record['member_id'])
        entry = ScheduleEntry(member_id=member_id, date=day, value=record['value'], reason=record['reason'])
        entries.setdefault(member_id, {})[entry.date_key] = entry

    return entries
