"""Interview session state machine: start, turn submission and report regeneration."""
from __future__ import annotations

import datetime as dt
import logging
import re
import uuid
from typing import Callable, List, Optional, Protocol

from agents.question_generator import QuestionGenerator
from agents.types import GeneratedQuestion, QuestionRequest
from config.settings import Settings
from llm_gateway import LlmQuotaExceeded, LlmRateLimited
from observability import log_event, span
from session_reports.pipeline import reset_report
from storage.base import SessionStore, StoreTransaction
from storage.models import SessionRecord, TurnRecord, utcnow

from .access import ensure_access
from .errors import (
    InterviewError,
    InvalidState,
    ProviderError,
    ProviderQuotaExhausted,
    ProviderRateLimited,
    SequenceMismatch,
    ValidationError,
)
from .locks import SessionLocks
from .models import (
    FirstQuestion,
    NextQuestion,
    RegenerateResult,
    StartInterview,
    StartResult,
    SubmitResult,
    TopicRef,
    Topics,
    TurnSubmission,
    api_status,
)

logger = logging.getLogger(__name__)


class ReportDispatch(Protocol):
    def dispatch(self, session_id: str) -> bool: ...


def map_question_error(exc: Exception, message: str) -> InterviewError:
    """Translate a question-generation failure into the caller-facing error."""

    status = getattr(exc, "status_code", None)
    code = getattr(exc, "code", None)
    if isinstance(exc, LlmQuotaExceeded) or (status == 429 and code == "insufficient_quota"):
        return ProviderQuotaExhausted("AI usage quota is exhausted. Contact an administrator or try again later.")
    if isinstance(exc, LlmRateLimited) or status == 429:
        return ProviderRateLimited("Too many AI requests right now. Please try again shortly.")
    return ProviderError(message)


class InterviewOrchestrator:
    """Drive sessions from the first question through completion.

    Each mutation of a session happens under that session's lock and inside a
    single store transaction, so a failed question generation leaves no trace.
    """

    def __init__(
        self,
        store: SessionStore,
        question_generator: QuestionGenerator,
        dispatcher: ReportDispatch,
        settings: Settings,
        *,
        locks: Optional[SessionLocks] = None,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._questions = question_generator
        self._dispatcher = dispatcher
        self._settings = settings
        self._locks = locks if locks is not None else SessionLocks()
        self._clock = clock

    # ------------------------------------------------------------------
    # start

    def start(self, request: StartInterview, caller: Optional[str]) -> StartResult:
        if not request.main_topic_id.strip():
            raise ValidationError("mainTopicId is required")
        if not request.sub_topic_ids:
            raise ValidationError("At least one subTopicId is required")
        if any(not sub.strip() for sub in request.sub_topic_ids):
            raise ValidationError("subTopicIds must not contain blank ids")

        question = self._ask(
            QuestionRequest(
                main_topic_id=request.main_topic_id,
                sub_topic_ids=request.sub_topic_ids,
                turn_index=1,
            ),
            session_id=None,
            failure_message="Failed to generate a question. Please try again shortly.",
        )

        now = self._clock()
        session_id = f"intv_{uuid.uuid4().hex[:12]}"
        with self._store.transaction() as tx:
            session = SessionRecord(
                session_id=session_id,
                owner_id=caller,
                title=self._resolve_title(tx, request.title, now),
                main_topic_id=request.main_topic_id,
                sub_topic_ids=request.sub_topic_ids,
                started_at=now,
                turn_limit_sec=self._settings.TURN_LIMIT_SEC,
                total_limit_sec=self._settings.TOTAL_LIMIT_SEC,
                created_at=now,
            )
            tx.insert_session(session)
            tx.insert_turn(
                TurnRecord(
                    session_id=session_id,
                    turn_index=1,
                    question_type="base",
                    question_text=question.text,
                    metrics={"questionId": question.question_id},
                )
            )
        log_event("session_started", session_id, turn=1, topic=request.main_topic_id, owner=caller)

        return StartResult(
            interview_id=session_id,
            topics=Topics(
                main=TopicRef(id=request.main_topic_id, label=request.main_topic_id),
                subs=[TopicRef(id=sub, label=sub) for sub in request.sub_topic_ids],
            ),
            status="IN_PROGRESS",
            turn_index=1,
            first_question=FirstQuestion(question_id=question.question_id, text=question.text),
        )

    # ------------------------------------------------------------------
    # submit_turn

    def submit_turn(self, session_id: str, submission: TurnSubmission, caller: Optional[str]) -> SubmitResult:
        max_turns = self._settings.MAX_TURNS
        max_followups = self._settings.MAX_CONSECUTIVE_FOLLOWUP

        with self._locks.lock_for(session_id):
            with self._store.transaction() as tx:
                session = ensure_access(tx.get_session(session_id), session_id, caller)
                turns = tx.list_turns(session_id)
            if session.status != "in_progress":
                raise InvalidState(
                    f"Interview is not in progress. Current status: {api_status(session.status)}",
                    details={"status": api_status(session.status)},
                )
            if submission.turn_index != session.current_turn:
                raise SequenceMismatch(
                    f"Turn order mismatch. Expected {session.current_turn}, got {submission.turn_index}",
                    details={"expected": session.current_turn, "received": submission.turn_index},
                )
            current = next((t for t in turns if t.turn_index == submission.turn_index), None)
            if current is None:
                raise InvalidState(f"No question stored for turn {submission.turn_index} of {session_id}")

            now = self._clock()
            metrics = {**current.metrics, "answerDuration": submission.answer_duration}
            if submission.face_metrics is not None:
                metrics["faceMetrics"] = submission.face_metrics
            if submission.voice_metrics is not None:
                metrics["voiceMetrics"] = submission.voice_metrics
            metrics["isFollowupQuestion"] = submission.is_followup_question
            answered = current.model_copy(
                update={"answer_text": submission.answer_text, "submitted_at": now, "metrics": metrics}
            )
            log_event("turn_submitted", session_id, turn=submission.turn_index, chars=len(submission.answer_text))

            if submission.turn_index >= max_turns:
                return self._complete(session, answered, now)

            streak = session.followup_streak
            is_followup = submission.is_followup_question and streak < max_followups
            if submission.is_followup_question and not is_followup:
                log_event("followup_capped", session_id, turn=submission.turn_index, streak=streak)

            question = self._ask(
                QuestionRequest(
                    main_topic_id=session.main_topic_id,
                    sub_topic_ids=session.sub_topic_ids,
                    turn_index=submission.turn_index + 1,
                    previous_questions=[t.question_text for t in turns],
                    is_followup=is_followup,
                    answer_text=submission.answer_text if is_followup else None,
                ),
                session_id=session_id,
                failure_message="Failed to generate the next question. Please try again shortly.",
            )

            question_type = "followup" if is_followup else "base"
            next_streak = streak + 1 if is_followup else 0
            next_turn = submission.turn_index + 1
            session.current_turn = next_turn
            session.followup_streak = next_streak
            with self._store.transaction() as tx:
                tx.save_turn(answered)
                tx.save_session(session)
                tx.upsert_turn(
                    TurnRecord(
                        session_id=session_id,
                        turn_index=next_turn,
                        question_type=question_type,
                        question_text=question.text,
                        metrics={"questionId": question.question_id},
                    )
                )

        log_event("turn_advanced", session_id, turn=next_turn, type=question_type, streak=next_streak)
        return SubmitResult(
            interview_id=session_id,
            next_turn_index=next_turn,
            status="IN_PROGRESS",
            next_question=NextQuestion(question_id=question.question_id, text=question.text, type=question_type),
            message="Answer submitted",
            consecutive_followup_count=next_streak,
            remaining_followup_count=max(0, max_followups - next_streak),
        )

    def _complete(self, session: SessionRecord, answered: TurnRecord, now: dt.datetime) -> SubmitResult:
        session.status = "analyzing"
        session.ended_at = now
        with self._store.transaction() as tx:
            tx.save_turn(answered)
            tx.save_session(session)
            reset_report(tx, session.session_id, now)
        log_event("session_completed", session.session_id, turn=answered.turn_index, status="analyzing")
        self._dispatcher.dispatch(session.session_id)

        streak = session.followup_streak
        return SubmitResult(
            interview_id=session.session_id,
            next_turn_index=None,
            status="ANALYZING",
            next_question=None,
            message="Interview complete. The report is being analyzed.",
            consecutive_followup_count=streak,
            remaining_followup_count=max(0, self._settings.MAX_CONSECUTIVE_FOLLOWUP - streak),
        )

    # ------------------------------------------------------------------
    # regenerate

    def regenerate_report(self, session_id: str, caller: Optional[str]) -> RegenerateResult:
        with self._locks.lock_for(session_id):
            with self._store.transaction() as tx:
                session = ensure_access(tx.get_session(session_id), session_id, caller)
                if session.status not in ("done", "failed"):
                    raise InvalidState(
                        "The report can only be regenerated after analysis has finished",
                        details={"status": api_status(session.status)},
                    )
                if not any(turn.answered for turn in tx.list_turns(session_id)):
                    raise ValidationError("No answers were submitted, so no report can be generated")
                previous = session.status
                session.status = "analyzing"
                tx.save_session(session)
                reset_report(tx, session_id, self._clock())
        log_event("report_regenerate", session_id, status="analyzing", previous=previous)
        self._dispatcher.dispatch(session_id)
        return RegenerateResult(
            interview_id=session_id,
            status="ANALYZING",
            message="Report regeneration started.",
        )

    # ------------------------------------------------------------------
    # helpers

    def _ask(self, request: QuestionRequest, *, session_id: Optional[str], failure_message: str) -> GeneratedQuestion:
        try:
            with span("question_generate", session_id, turn=request.turn_index):
                return self._questions.generate_question(request)
        except Exception as exc:
            mapped = map_question_error(exc, failure_message)
            logger.warning("Question generation failed (turn %d): %s", request.turn_index, exc)
            log_event(
                "question_failed",
                session_id,
                level=logging.WARNING,
                turn=request.turn_index,
                code=mapped.code,
                error=str(exc),
            )
            raise mapped from exc

    def _resolve_title(self, tx: StoreTransaction, raw: Optional[str], now: dt.datetime) -> str:
        title = (raw or "").strip()
        if title:
            return title
        prefix = now.strftime("%Y-%m-%d")
        pattern = re.compile(rf"^{re.escape(prefix)} \((\d+)\)$")
        sequences: List[int] = []
        for existing in tx.titles_with_prefix(f"{prefix} ("):
            match = pattern.match(existing)
            if match:
                sequences.append(int(match.group(1)))
        return f"{prefix} ({max(sequences, default=0) + 1:02d})"


__all__ = ["InterviewOrchestrator", "ReportDispatch", "map_question_error"]
