from __future__ import annotations  # In-process session store for tests and ephemeral runs

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from .base import owner_visible
from .models import ReportRecord, ReportStatus, SessionRecord, TurnRecord


class _State:  # Mutable tables guarded by the store lock
    def __init__(self) -> None:
        self.sessions: Dict[str, SessionRecord] = {}
        self.turns: Dict[Tuple[str, int], TurnRecord] = {}
        self.reports: Dict[str, ReportRecord] = {}
        self.next_report_id = 1

    def snapshot(self) -> "_State":  # Deep copy used for rollback
        clone = _State()
        clone.sessions = {key: value.model_copy(deep=True) for key, value in self.sessions.items()}
        clone.turns = {key: value.model_copy(deep=True) for key, value in self.turns.items()}
        clone.reports = {key: value.model_copy(deep=True) for key, value in self.reports.items()}
        clone.next_report_id = self.next_report_id
        return clone


class MemoryTransaction:  # Unit of work over the in-memory tables
    def __init__(self, state: _State) -> None:
        self._state = state

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        record = self._state.sessions.get(session_id)
        return record.model_copy(deep=True) if record else None

    def list_turns(self, session_id: str) -> List[TurnRecord]:
        turns = [turn for (sid, _), turn in self._state.turns.items() if sid == session_id]
        return [turn.model_copy(deep=True) for turn in sorted(turns, key=lambda t: t.turn_index)]

    def get_report(self, session_id: str) -> Optional[ReportRecord]:
        record = self._state.reports.get(session_id)
        return record.model_copy(deep=True) if record else None

    def titles_with_prefix(self, prefix: str) -> List[str]:
        return [s.title for s in self._state.sessions.values() if s.title and s.title.startswith(prefix)]

    def insert_session(self, record: SessionRecord) -> None:
        if record.session_id in self._state.sessions:
            raise KeyError(f"Session '{record.session_id}' already exists")
        self._state.sessions[record.session_id] = record.model_copy(deep=True)

    def save_session(self, record: SessionRecord) -> None:
        if record.session_id not in self._state.sessions:
            raise KeyError(f"Session '{record.session_id}' not found")
        self._state.sessions[record.session_id] = record.model_copy(deep=True)

    def insert_turn(self, record: TurnRecord) -> None:
        key = (record.session_id, record.turn_index)
        if key in self._state.turns:
            raise KeyError(f"Turn {record.turn_index} of session '{record.session_id}' already exists")
        self._state.turns[key] = record.model_copy(deep=True)

    def save_turn(self, record: TurnRecord) -> None:
        key = (record.session_id, record.turn_index)
        if key not in self._state.turns:
            raise KeyError(f"Turn {record.turn_index} of session '{record.session_id}' not found")
        self._state.turns[key] = record.model_copy(deep=True)

    def upsert_turn(self, record: TurnRecord) -> None:
        key = (record.session_id, record.turn_index)
        existing = self._state.turns.get(key)
        if existing is None:
            self._state.turns[key] = record.model_copy(deep=True)
            return
        # Answer columns survive a question rewrite.
        self._state.turns[key] = existing.model_copy(
            update={
                "question_type": record.question_type,
                "question_text": record.question_text,
                "metrics": dict(record.metrics),
            }
        )

    def upsert_report(self, record: ReportRecord) -> ReportRecord:
        existing = self._state.reports.get(record.session_id)
        if existing is None:
            stored = record.model_copy(update={"report_id": self._state.next_report_id}, deep=True)
            self._state.next_report_id += 1
        else:
            stored = record.model_copy(
                update={"report_id": existing.report_id, "created_at": existing.created_at},
                deep=True,
            )
        self._state.reports[record.session_id] = stored
        return stored.model_copy(deep=True)


class InMemorySessionStore:  # Dict-backed store with snapshot rollback
    def __init__(self) -> None:
        self._state = _State()
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[MemoryTransaction]:
        with self._lock:
            backup = self._state.snapshot()
            try:
                yield MemoryTransaction(self._state)
            except BaseException:
                self._state = backup
                raise

    @contextmanager
    def read(self) -> Iterator[MemoryTransaction]:
        with self._lock:
            yield MemoryTransaction(self._state)

    def list_sessions(
        self,
        *,
        owner_id: Optional[str],
        include_anonymous: bool,
        report_status: Optional[ReportStatus] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        ascending: bool = False,
    ) -> List[SessionRecord]:
        with self._lock:
            matches = self._visible(owner_id, include_anonymous, report_status)
        matches.sort(key=lambda s: (s.created_at, s.session_id), reverse=not ascending)
        end = None if limit is None else offset + limit
        return matches[offset:end]

    def count_sessions(
        self,
        *,
        owner_id: Optional[str],
        include_anonymous: bool,
        report_status: Optional[ReportStatus] = None,
    ) -> int:
        with self._lock:
            return len(self._visible(owner_id, include_anonymous, report_status))

    def get_report_by_id(self, report_id: int) -> Optional[ReportRecord]:
        with self._lock:
            for report in self._state.reports.values():
                if report.report_id == report_id:
                    return report.model_copy(deep=True)
        return None

    def stalled_reports(self, limit: int = 10) -> List[ReportRecord]:
        with self._lock:
            stalled = [
                r.model_copy(deep=True)
                for r in self._state.reports.values()
                if r.status == "analyzing" and r.generated_at is None
            ]
        stalled.sort(key=lambda r: (r.created_at, r.report_id))
        return stalled[:limit]

    def _visible(
        self,
        owner_id: Optional[str],
        include_anonymous: bool,
        report_status: Optional[ReportStatus],
    ) -> List[SessionRecord]:
        result: List[SessionRecord] = []
        for session in self._state.sessions.values():
            if not owner_visible(session.owner_id, owner_id, include_anonymous):
                continue
            if report_status is not None:
                report = self._state.reports.get(session.session_id)
                if report is None or report.status != report_status:
                    continue
            result.append(session.model_copy(deep=True))
        return result


__all__ = ["InMemorySessionStore", "MemoryTransaction"]
