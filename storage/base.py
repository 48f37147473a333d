"""Repository protocols shared by the SQLite and in-memory stores."""
from __future__ import annotations

from typing import ContextManager, List, Optional, Protocol

from .models import ReportRecord, ReportStatus, SessionRecord, TurnRecord


class StoreTransaction(Protocol):
    """Unit of work: every write inside one transaction lands together or not at all."""

    def get_session(self, session_id: str) -> Optional[SessionRecord]: ...

    def list_turns(self, session_id: str) -> List[TurnRecord]: ...

    def get_report(self, session_id: str) -> Optional[ReportRecord]: ...

    def titles_with_prefix(self, prefix: str) -> List[str]: ...

    def insert_session(self, record: SessionRecord) -> None: ...

    def save_session(self, record: SessionRecord) -> None: ...

    def insert_turn(self, record: TurnRecord) -> None: ...

    def save_turn(self, record: TurnRecord) -> None: ...

    def upsert_turn(self, record: TurnRecord) -> None: ...

    def upsert_report(self, record: ReportRecord) -> ReportRecord: ...


class SessionStore(Protocol):
    def transaction(self) -> ContextManager[StoreTransaction]: ...

    def read(self) -> ContextManager[StoreTransaction]: ...

    def list_sessions(
        self,
        *,
        owner_id: Optional[str],
        include_anonymous: bool,
        report_status: Optional[ReportStatus] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        ascending: bool = False,
    ) -> List[SessionRecord]: ...

    def count_sessions(
        self,
        *,
        owner_id: Optional[str],
        include_anonymous: bool,
        report_status: Optional[ReportStatus] = None,
    ) -> int: ...

    def get_report_by_id(self, report_id: int) -> Optional[ReportRecord]: ...

    def stalled_reports(self, limit: int = 10) -> List[ReportRecord]: ...


def owner_visible(record_owner: Optional[str], owner_id: Optional[str], include_anonymous: bool) -> bool:
    """Return True when a session owned by ``record_owner`` is visible to ``owner_id``."""

    if record_owner is None:
        return owner_id is None or include_anonymous
    return record_owner == owner_id


__all__ = ["StoreTransaction", "SessionStore", "owner_visible"]
