"""
SQLite database utilities for the availability store.
"""
from __future__ import annotations

import os
import sqlite3
from typing import Optional

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_DB_PATH = os.environ.get(
    "AVAILABILITY_DB_PATH",
    os.path.join(PROJECT_ROOT, "data", "availability.sqlite3"),
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_metadata (
  key TEXT PRIMARY KEY,
  value TEXT
);

INSERT OR IGNORE INTO app_metadata (key, value)
VALUES ('schema_version', '1');

CREATE TABLE IF NOT EXISTS team_members (
  id INTEGER PRIMARY KEY,
  name TEXT NOT NULL,
  team_id INTEGER NOT NULL,
  is_manager INTEGER DEFAULT 0,
  created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS schedule_entries (
  member_id INTEGER NOT NULL,
  date TEXT NOT NULL,
  value TEXT NOT NULL CHECK (value IN ('1', '0.5', 'X')),
  reason TEXT,
  updated_at TEXT,
  PRIMARY KEY (member_id, date),
  FOREIGN KEY(member_id) REFERENCES team_members(id)
);

CREATE TABLE IF NOT EXISTS sprint_calendar (
  sprint_number INTEGER PRIMARY KEY,
  sprint_name TEXT,
  sprint_start_dt TEXT NOT NULL,
  sprint_end_dt TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_members_team ON team_members(team_id);
CREATE INDEX IF NOT EXISTS idx_schedule_date ON schedule_entries(date);
"""


def get_db_path(db_path: Optional[str] = None) -> str:
    return db_path or DEFAULT_DB_PATH


def connect(db_path: Optional[str] = None) -> sqlite3.Connection:
    path = get_db_path(db_path)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def initialize_db(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()
