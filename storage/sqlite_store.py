"""SQLite-backed session store."""
from __future__ import annotations

import datetime as dt
import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .migrate import migrate
from .models import ReportRecord, ReportStatus, SessionRecord, TurnRecord
from .sqlite import get_conn, read_transaction, write_transaction

_SESSION_COLUMNS = (
    "session_id, owner_id, title, topic_json, status, current_turn, followup_streak, "
    "started_at, ended_at, turn_limit_sec, total_limit_sec, created_at"
)
_TURN_COLUMNS = "session_id, turn_index, question_type, question_text, answer_text, submitted_at, metrics_json"
_REPORT_COLUMNS = (
    "report_id, session_id, status, total_score, duration_sec, model, prompt_version, "
    "generated_at, result_json, created_at"
)


def _ts(value: Optional[dt.datetime]) -> Optional[str]:  # Serialize timestamps as ISO-8601
    return value.isoformat() if value is not None else None


def _json(value: Any) -> Optional[str]:  # Serialize open blobs
    return json.dumps(value, ensure_ascii=True) if value is not None else None


def _topic_json(record: SessionRecord) -> str:  # Topic is stored whole so later turns can regenerate questions
    return json.dumps({"mainTopicId": record.main_topic_id, "subTopicIds": record.sub_topic_ids}, ensure_ascii=True)


def parse_topic(raw: Optional[str]) -> Tuple[str, List[str]]:  # Read topic column, tolerating legacy plain strings
    if not raw:
        return "unknown", []
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw, []
    if isinstance(parsed, dict) and isinstance(parsed.get("mainTopicId"), str):
        subs = parsed.get("subTopicIds")
        return parsed["mainTopicId"], [item for item in subs if isinstance(item, str)] if isinstance(subs, list) else []
    return raw, []


def _load_blob(raw: Optional[str]) -> Optional[Dict[str, Any]]:  # Decode JSON object blobs, dropping anything else
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _session_from_row(row: sqlite3.Row) -> SessionRecord:
    main_topic_id, sub_topic_ids = parse_topic(row["topic_json"])
    return SessionRecord(
        session_id=row["session_id"],
        owner_id=row["owner_id"],
        title=row["title"],
        main_topic_id=main_topic_id,
        sub_topic_ids=sub_topic_ids,
        status=row["status"],
        current_turn=row["current_turn"],
        followup_streak=row["followup_streak"],
        started_at=row["started_at"],
        ended_at=row["ended_at"],
        turn_limit_sec=row["turn_limit_sec"],
        total_limit_sec=row["total_limit_sec"],
        created_at=row["created_at"],
    )


def _turn_from_row(row: sqlite3.Row) -> TurnRecord:
    return TurnRecord(
        session_id=row["session_id"],
        turn_index=row["turn_index"],
        question_type=row["question_type"],
        question_text=row["question_text"],
        answer_text=row["answer_text"] or "",
        submitted_at=row["submitted_at"],
        metrics=_load_blob(row["metrics_json"]) or {},
    )


def _report_from_row(row: sqlite3.Row) -> ReportRecord:
    return ReportRecord(
        report_id=row["report_id"],
        session_id=row["session_id"],
        status=row["status"],
        total_score=row["total_score"],
        duration_sec=row["duration_sec"],
        model=row["model"],
        prompt_version=row["prompt_version"],
        generated_at=row["generated_at"],
        result=_load_blob(row["result_json"]),
        created_at=row["created_at"],
    )


class SqliteTransaction:  # Statements issued against one BEGIN IMMEDIATE connection
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        row = self._conn.execute(
            f"SELECT {_SESSION_COLUMNS} FROM interview_sessions WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        return _session_from_row(row) if row is not None else None

    def list_turns(self, session_id: str) -> List[TurnRecord]:
        rows = self._conn.execute(
            f"SELECT {_TURN_COLUMNS} FROM interview_turns WHERE session_id = ? ORDER BY turn_index ASC",
            (session_id,),
        ).fetchall()
        return [_turn_from_row(row) for row in rows]

    def get_report(self, session_id: str) -> Optional[ReportRecord]:
        row = self._conn.execute(
            f"SELECT {_REPORT_COLUMNS} FROM interview_reports WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        return _report_from_row(row) if row is not None else None

    def titles_with_prefix(self, prefix: str) -> List[str]:
        rows = self._conn.execute(
            "SELECT title FROM interview_sessions WHERE title LIKE ? ESCAPE '\\'",
            (prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%",),
        ).fetchall()
        return [row["title"] for row in rows if row["title"]]

    def insert_session(self, record: SessionRecord) -> None:
        self._conn.execute(
            f"INSERT INTO interview_sessions ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.session_id,
                record.owner_id,
                record.title,
                _topic_json(record),
                record.status,
                record.current_turn,
                record.followup_streak,
                _ts(record.started_at),
                _ts(record.ended_at),
                record.turn_limit_sec,
                record.total_limit_sec,
                _ts(record.created_at),
            ),
        )

    def save_session(self, record: SessionRecord) -> None:
        cur = self._conn.execute(
            """
            UPDATE interview_sessions
            SET owner_id = ?, title = ?, topic_json = ?, status = ?, current_turn = ?,
                followup_streak = ?, started_at = ?, ended_at = ?, turn_limit_sec = ?, total_limit_sec = ?
            WHERE session_id = ?
            """,
            (
                record.owner_id,
                record.title,
                _topic_json(record),
                record.status,
                record.current_turn,
                record.followup_streak,
                _ts(record.started_at),
                _ts(record.ended_at),
                record.turn_limit_sec,
                record.total_limit_sec,
                record.session_id,
            ),
        )
        if cur.rowcount == 0:
            raise KeyError(f"Session '{record.session_id}' not found")

    def insert_turn(self, record: TurnRecord) -> None:
        self._conn.execute(
            f"INSERT INTO interview_turns ({_TURN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            self._turn_params(record),
        )

    def save_turn(self, record: TurnRecord) -> None:
        cur = self._conn.execute(
            """
            UPDATE interview_turns
            SET question_type = ?, question_text = ?, answer_text = ?, submitted_at = ?, metrics_json = ?
            WHERE session_id = ? AND turn_index = ?
            """,
            (
                record.question_type,
                record.question_text,
                record.answer_text,
                _ts(record.submitted_at),
                _json(record.metrics),
                record.session_id,
                record.turn_index,
            ),
        )
        if cur.rowcount == 0:
            raise KeyError(f"Turn {record.turn_index} of session '{record.session_id}' not found")

    def upsert_turn(self, record: TurnRecord) -> None:
        self._conn.execute(
            f"""
            INSERT INTO interview_turns ({_TURN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id, turn_index) DO UPDATE SET
                question_type = excluded.question_type,
                question_text = excluded.question_text,
                metrics_json = excluded.metrics_json
            """,
            self._turn_params(record),
        )

    def upsert_report(self, record: ReportRecord) -> ReportRecord:
        self._conn.execute(
            """
            INSERT INTO interview_reports (
                session_id, status, total_score, duration_sec, model, prompt_version,
                generated_at, result_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                status = excluded.status,
                total_score = excluded.total_score,
                duration_sec = excluded.duration_sec,
                model = excluded.model,
                prompt_version = excluded.prompt_version,
                generated_at = excluded.generated_at,
                result_json = excluded.result_json
            """,
            (
                record.session_id,
                record.status,
                record.total_score,
                record.duration_sec,
                record.model,
                record.prompt_version,
                _ts(record.generated_at),
                _json(record.result),
                _ts(record.created_at),
            ),
        )
        stored = self.get_report(record.session_id)
        assert stored is not None
        return stored

    def _turn_params(self, record: TurnRecord) -> Tuple[Any, ...]:
        return (
            record.session_id,
            record.turn_index,
            record.question_type,
            record.question_text,
            record.answer_text,
            _ts(record.submitted_at),
            _json(record.metrics),
        )


class SqliteSessionStore:  # SQLite-backed persistence for sessions, turns and reports
    def __init__(self, path: Path | str) -> None:  # Initialize store and schema
        self._path = str(path)
        migrate(self._path)

    @contextmanager
    def transaction(self) -> Iterator[SqliteTransaction]:  # Open a write transaction
        with write_transaction(self._path) as conn:
            yield SqliteTransaction(conn)

    @contextmanager
    def read(self) -> Iterator[SqliteTransaction]:  # Consistent read snapshot; writes are not allowed here
        with read_transaction(self._path) as conn:
            yield SqliteTransaction(conn)

    def list_sessions(
        self,
        *,
        owner_id: Optional[str],
        include_anonymous: bool,
        report_status: Optional[ReportStatus] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        ascending: bool = False,
    ) -> List[SessionRecord]:  # Sessions visible to the caller ordered by creation time
        where, params = self._visibility(owner_id, include_anonymous, report_status)
        order = "ASC" if ascending else "DESC"
        sql = (
            f"SELECT {', '.join('s.' + col.strip() for col in _SESSION_COLUMNS.split(','))} "
            f"FROM interview_sessions s LEFT JOIN interview_reports r ON r.session_id = s.session_id "
            f"WHERE {where} ORDER BY s.created_at {order}, s.session_id {order}"
        )
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params += [limit, offset]
        with get_conn(self._path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_session_from_row(row) for row in rows]

    def count_sessions(
        self,
        *,
        owner_id: Optional[str],
        include_anonymous: bool,
        report_status: Optional[ReportStatus] = None,
    ) -> int:  # Count sessions visible to the caller
        where, params = self._visibility(owner_id, include_anonymous, report_status)
        with get_conn(self._path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM interview_sessions s "
                f"LEFT JOIN interview_reports r ON r.session_id = s.session_id WHERE {where}",
                params,
            ).fetchone()
        return int(row[0])

    def get_report_by_id(self, report_id: int) -> Optional[ReportRecord]:  # Look up a report by surrogate id
        with get_conn(self._path) as conn:
            row = conn.execute(
                f"SELECT {_REPORT_COLUMNS} FROM interview_reports WHERE report_id = ?",
                (report_id,),
            ).fetchone()
        return _report_from_row(row) if row is not None else None

    def stalled_reports(self, limit: int = 10) -> List[ReportRecord]:  # Reports left analyzing without a result
        with get_conn(self._path) as conn:
            rows = conn.execute(
                f"""
                SELECT {_REPORT_COLUMNS} FROM interview_reports
                WHERE status = 'analyzing' AND generated_at IS NULL
                ORDER BY created_at ASC, report_id ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [_report_from_row(row) for row in rows]

    def _visibility(
        self,
        owner_id: Optional[str],
        include_anonymous: bool,
        report_status: Optional[ReportStatus],
    ) -> Tuple[str, List[Any]]:  # WHERE clause mirroring storage.base.owner_visible
        params: List[Any] = []
        if owner_id is None:
            clauses = ["s.owner_id IS NULL"]
        elif include_anonymous:
            clauses = ["(s.owner_id = ? OR s.owner_id IS NULL)"]
            params.append(owner_id)
        else:
            clauses = ["s.owner_id = ?"]
            params.append(owner_id)
        if report_status is not None:
            clauses.append("r.status = ?")
            params.append(report_status)
        return " AND ".join(clauses), params


__all__ = ["SqliteSessionStore", "SqliteTransaction", "parse_topic"]
