"""SQLite schema migrations."""
from __future__ import annotations

import os
import sqlite3
from typing import Iterable, Optional

from config.settings import settings

SCHEMA: Iterable[str] = [
    """
CREATE TABLE IF NOT EXISTS interview_sessions (
  session_id TEXT PRIMARY KEY,
  owner_id TEXT,
  title TEXT,
  topic_json TEXT NOT NULL,
  status TEXT NOT NULL,
  current_turn INTEGER NOT NULL,
  followup_streak INTEGER NOT NULL DEFAULT 0,
  started_at TEXT NOT NULL,
  ended_at TEXT,
  turn_limit_sec INTEGER NOT NULL,
  total_limit_sec INTEGER NOT NULL,
  created_at TEXT NOT NULL
);
""",
    """
CREATE TABLE IF NOT EXISTS interview_turns (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT NOT NULL,
  turn_index INTEGER NOT NULL,
  question_type TEXT NOT NULL,
  question_text TEXT NOT NULL,
  answer_text TEXT NOT NULL DEFAULT '',
  submitted_at TEXT,
  metrics_json TEXT,
  UNIQUE(session_id, turn_index),
  FOREIGN KEY(session_id) REFERENCES interview_sessions(session_id) ON DELETE CASCADE
);
""",
    """
CREATE TABLE IF NOT EXISTS interview_reports (
  report_id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT NOT NULL UNIQUE,
  status TEXT NOT NULL,
  total_score REAL,
  duration_sec INTEGER,
  model TEXT,
  prompt_version TEXT,
  generated_at TEXT,
  result_json TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY(session_id) REFERENCES interview_sessions(session_id) ON DELETE CASCADE
);
""",
    "CREATE INDEX IF NOT EXISTS idx_sessions_owner ON interview_sessions(owner_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_reports_status ON interview_reports(status, generated_at);",
]


def migrate(db_path: Optional[str] = None) -> None:
    """Apply schema migrations to the SQLite database."""

    db_path = db_path or settings.DB_PATH
    directory = os.path.dirname(db_path) or "."
    os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        for stmt in SCHEMA:
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()


if __name__ == "__main__":
    migrate()
