"""Evaluation report generation for completed interview sessions."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Dict, Optional

from agents.report_generator import ReportGenerator
from interview.errors import PARSE_DEGRADED
from interview.locks import SessionLocks
from observability import log_event, span
from storage.base import SessionStore, StoreTransaction
from storage.models import ReportRecord, ReportStatus, SessionRecord, utcnow

from .parsing import parse_report_json
from .prompt import build_report_prompt
from .view import as_number

logger = logging.getLogger(__name__)


def duration_seconds(session: SessionRecord) -> Optional[int]:
    if session.ended_at is None:
        return None
    return max(0, int((session.ended_at - session.started_at).total_seconds()))


def reset_report(tx: StoreTransaction, session_id: str, now: dt.datetime) -> ReportRecord:
    """Create the session's report, or put an existing one back to analyzing with no result."""

    existing = tx.get_report(session_id)
    return tx.upsert_report(
        ReportRecord(
            session_id=session_id,
            status="analyzing",
            created_at=existing.created_at if existing is not None else now,
        )
    )


class ReportPipeline:
    """Turn a finished session transcript into a stored, scored report.

    The provider call runs outside the session lock; only the guard read and
    the final write hold it.
    """

    def __init__(
        self,
        store: SessionStore,
        generator: ReportGenerator,
        *,
        locks: Optional[SessionLocks] = None,
        prompt_version: str = "v1",
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._generator = generator
        self._locks = locks if locks is not None else SessionLocks()
        self._prompt_version = prompt_version
        self._clock = clock

    def generate(self, session_id: str) -> Optional[ReportRecord]:
        """Generate and persist the report for ``session_id``; provider, parse and write failures are stored, not raised."""

        with self._locks.lock_for(session_id):
            with self._store.transaction() as tx:
                existing = tx.get_report(session_id)
                if existing is not None and existing.status == "done" and existing.generated_at is not None:
                    logger.info("Report for %s already generated; skipping", session_id)
                    return existing
                session = tx.get_session(session_id)
                if session is None:
                    logger.warning("Report requested for unknown session %s", session_id)
                    return None
                turns = tx.list_turns(session_id)

        duration = duration_seconds(session)
        model = getattr(self._generator, "model", None)
        try:
            prompt = build_report_prompt(session, turns)
            with span("report_generate", session_id, model=model):
                raw = self._generator.generate_report(prompt)
            parsed = parse_report_json(raw)
            if parsed is None:
                log_event("report_parse_degraded", session_id, level=logging.WARNING, code=PARSE_DEGRADED, chars=len(raw))
                result: Dict[str, Any] = {"_rawText": raw}
                total_score = None
            else:
                result = {**parsed, "_rawText": raw}
                total_score = as_number(parsed.get("totalScore"))
            stored = self._persist(session_id, "done", result, total_score, duration, model)
        except Exception as exc:  # provider, parse and write failures become a failed report
            logger.exception("Report generation failed for %s", session_id)
            log_event("report_failed", session_id, level=logging.WARNING, error=str(exc))
            return self._persist(session_id, "failed", {"error": str(exc)}, None, duration, model)

        log_event("report_done", session_id, report_id=stored.report_id, status="done", score=total_score)
        return stored

    def _persist(
        self,
        session_id: str,
        status: ReportStatus,
        result: Dict[str, Any],
        total_score: Optional[float],
        duration: Optional[int],
        model: Optional[str],
    ) -> ReportRecord:
        now = self._clock()
        with self._locks.lock_for(session_id):
            with self._store.transaction() as tx:
                existing = tx.get_report(session_id)
                stored = tx.upsert_report(
                    ReportRecord(
                        session_id=session_id,
                        status=status,
                        total_score=total_score,
                        duration_sec=duration,
                        model=model,
                        prompt_version=self._prompt_version,
                        generated_at=now,
                        result=result,
                        created_at=existing.created_at if existing is not None else now,
                    )
                )
                session = tx.get_session(session_id)
                if session is not None:
                    session.status = status
                    tx.save_session(session)
        return stored


__all__ = ["ReportPipeline", "duration_seconds", "reset_report"]
