"""Lightweight CLI helpers for inspecting interview sessions and reports."""
from __future__ import annotations

import argparse
import sqlite3
from typing import Optional

from config.settings import settings


def _connect(db_path: Optional[str]) -> sqlite3.Connection:
    return sqlite3.connect(db_path or settings.DB_PATH)


def tail_sessions(limit: int = 20, db_path: Optional[str] = None) -> None:
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT created_at, session_id, owner_id, status, current_turn, followup_streak, title
            FROM interview_sessions
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (limit,),
        )
        for row in cursor.fetchall():
            ts, session_id, owner_id, status, turn, streak, title = row
            print(f"[{ts}] {session_id} owner={owner_id or '-'} {status} turn={turn} streak={streak} title={title}")
    finally:
        conn.close()


def tail_reports(limit: int = 20, db_path: Optional[str] = None) -> None:
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT created_at, report_id, session_id, status, total_score, model, prompt_version, generated_at
            FROM interview_reports
            ORDER BY report_id DESC
            LIMIT ?
            """,
            (limit,),
        )
        for row in cursor.fetchall():
            ts, report_id, session_id, status, score, model, version, generated_at = row
            print(
                f"[{ts}] #{report_id} {session_id} {status} score={score} model={model}/{version} generated={generated_at}"
            )
    finally:
        conn.close()


def list_stalled(limit: int = 20, db_path: Optional[str] = None) -> None:
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT created_at, report_id, session_id
            FROM interview_reports
            WHERE status = 'analyzing' AND generated_at IS NULL
            ORDER BY created_at ASC
            LIMIT ?
            """,
            (limit,),
        )
        for ts, report_id, session_id in cursor.fetchall():
            print(f"[{ts}] #{report_id} {session_id} stalled")
    finally:
        conn.close()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", help="SQLite database path (defaults to DB_PATH)")
    parser.add_argument("--tail-sessions", type=int, help="Show the latest interview sessions")
    parser.add_argument("--tail-reports", type=int, help="Show the latest reports")
    parser.add_argument("--stalled", type=int, help="List reports stuck in analyzing")
    args = parser.parse_args(argv)

    if args.tail_sessions:
        tail_sessions(args.tail_sessions, args.db)
    if args.tail_reports:
        tail_reports(args.tail_reports, args.db)
    if args.stalled:
        list_stalled(args.stalled, args.db)


if __name__ == "__main__":
    main()
