from __future__ import annotations

import datetime as dt
import threading

import pytest

from interview.errors import (
    Forbidden,
    InvalidState,
    NotFound,
    ProviderError,
    ProviderQuotaExhausted,
    ProviderRateLimited,
    SequenceMismatch,
    ValidationError,
)
from interview.locks import SessionLocks
from interview.models import StartInterview, TurnSubmission
from interview.orchestrator import InterviewOrchestrator
from llm_gateway import LlmGatewayError, LlmQuotaExceeded, LlmRateLimited
from storage.models import SessionRecord, TurnRecord

FIXED_NOW = dt.datetime(2026, 3, 5, 9, 30, tzinfo=dt.timezone.utc)


def _orchestrator(store, questions, dispatcher, settings) -> InterviewOrchestrator:
    return InterviewOrchestrator(store, questions, dispatcher, settings, clock=lambda: FIXED_NOW)


def _start(orch, caller=None, title=None):
    return orch.start(
        StartInterview(main_topic_id="frontend", sub_topic_ids=["react", "css"], title=title),
        caller,
    )


def _answer(turn_index: int, followup: bool = False, text: str = "An answer with detail.") -> TurnSubmission:
    return TurnSubmission(
        answer_text=text,
        turn_index=turn_index,
        answer_duration=30.5,
        is_followup_question=followup,
    )


def _load(store, session_id):
    with store.transaction() as tx:
        return tx.get_session(session_id), tx.list_turns(session_id), tx.get_report(session_id)


def test_start_creates_session_and_first_turn(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)

    result = _start(orch, caller="alice")

    assert result.status == "IN_PROGRESS"
    assert result.turn_index == 1
    assert result.first_question.text == "base question 1?"
    assert result.topics.main.id == "frontend"
    assert [sub.id for sub in result.topics.subs] == ["react", "css"]
    assert questions.requests[0].previous_questions == []

    session, turns, report = _load(store, result.interview_id)
    assert session.status == "in_progress"
    assert session.current_turn == 1
    assert session.followup_streak == 0
    assert session.owner_id == "alice"
    assert session.turn_limit_sec == 60
    assert session.total_limit_sec == 600
    assert len(turns) == 1
    assert turns[0].question_type == "base"
    assert turns[0].answer_text == ""
    assert turns[0].metrics == {"questionId": "q_test_1"}
    assert report is None


def test_start_assigns_daily_title_sequence(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)

    first = _start(orch)
    second = _start(orch)
    named = _start(orch, title="  Mock round  ")

    assert _load(store, first.interview_id)[0].title == "2026-03-05 (01)"
    assert _load(store, second.interview_id)[0].title == "2026-03-05 (02)"
    assert _load(store, named.interview_id)[0].title == "Mock round"


def test_start_requires_topics(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)

    with pytest.raises(ValidationError):
        orch.start(StartInterview(main_topic_id="frontend", sub_topic_ids=[]), None)
    with pytest.raises(ValidationError):
        orch.start(StartInterview(main_topic_id=" ", sub_topic_ids=["react"]), None)
    with pytest.raises(ValidationError):
        orch.start(StartInterview(main_topic_id="frontend", sub_topic_ids=["react", " "]), None)
    with pytest.raises(ValidationError):
        orch.start(StartInterview(main_topic_id="frontend", sub_topic_ids=[""]), None)
    assert questions.requests == []


@pytest.mark.parametrize(
    "error, expected, status",
    [
        (LlmQuotaExceeded("quota", status_code=429, code="insufficient_quota"), ProviderQuotaExhausted, 503),
        (LlmRateLimited("slow down", status_code=429), ProviderRateLimited, 429),
        (LlmGatewayError("boom", status_code=500), ProviderError, 400),
        (RuntimeError("unexpected"), ProviderError, 400),
    ],
)
def test_start_maps_provider_failures_and_creates_nothing(
    store, questions, dispatcher, test_settings, error, expected, status
):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    questions.error = error

    with pytest.raises(expected) as info:
        _start(orch)

    assert info.value.status_code == status
    assert store.count_sessions(owner_id=None, include_anonymous=True) == 0


def test_submit_turn_merges_answer_and_advances(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    session_id = _start(orch).interview_id

    submission = TurnSubmission(
        answer_text="React batches state updates.",
        turn_index=1,
        answer_duration=42,
        face_metrics={"eyeOffPercent": 12},
    )
    result = orch.submit_turn(session_id, submission, None)

    assert result.next_turn_index == 2
    assert result.status == "IN_PROGRESS"
    assert result.next_question.type == "base"
    assert result.next_question.question_id == "q_test_2"
    assert result.consecutive_followup_count == 0
    assert result.remaining_followup_count == 2

    session, turns, _ = _load(store, session_id)
    assert session.current_turn == 2
    assert [t.turn_index for t in turns] == [1, 2]
    first = turns[0]
    assert first.answer_text == "React batches state updates."
    assert first.submitted_at is not None
    assert first.metrics == {
        "questionId": "q_test_1",
        "answerDuration": 42,
        "faceMetrics": {"eyeOffPercent": 12},
        "isFollowupQuestion": False,
    }
    assert turns[1].answer_text == ""
    assert turns[1].metrics == {"questionId": "q_test_2"}
    assert questions.requests[-1].previous_questions == ["base question 1?"]


def test_followups_are_capped_after_two_in_a_row(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    session_id = _start(orch).interview_id

    first = orch.submit_turn(session_id, _answer(1, followup=True, text="Answer one"), None)
    second = orch.submit_turn(session_id, _answer(2, followup=True), None)
    third = orch.submit_turn(session_id, _answer(3, followup=True), None)
    fourth = orch.submit_turn(session_id, _answer(4, followup=True), None)

    assert [r.next_question.type for r in (first, second, third, fourth)] == [
        "followup",
        "followup",
        "base",
        "followup",
    ]
    assert [r.consecutive_followup_count for r in (first, second, third, fourth)] == [1, 2, 0, 1]
    assert [r.remaining_followup_count for r in (first, second, third, fourth)] == [1, 0, 2, 1]
    assert questions.requests[1].is_followup is True
    assert questions.requests[1].answer_text == "Answer one"
    assert questions.requests[3].is_followup is False
    assert questions.requests[3].answer_text is None

    _, turns, _ = _load(store, session_id)
    assert [t.question_type for t in turns] == ["base", "followup", "followup", "base", "followup"]


def test_followup_not_requested_resets_streak(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    session_id = _start(orch).interview_id

    orch.submit_turn(session_id, _answer(1, followup=True), None)
    result = orch.submit_turn(session_id, _answer(2, followup=False), None)

    assert result.next_question.type == "base"
    assert result.consecutive_followup_count == 0
    assert _load(store, session_id)[0].followup_streak == 0


def test_sequence_mismatch_changes_nothing(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    session_id = _start(orch).interview_id
    before = _load(store, session_id)

    with pytest.raises(SequenceMismatch) as info:
        orch.submit_turn(session_id, _answer(2), None)

    assert info.value.details == {"expected": 1, "received": 2}
    assert _load(store, session_id) == before
    assert len(questions.requests) == 1


def test_question_failure_during_submit_commits_nothing(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    session_id = _start(orch).interview_id
    questions.error = LlmRateLimited("slow down", status_code=429)

    with pytest.raises(ProviderRateLimited):
        orch.submit_turn(session_id, _answer(1), None)

    session, turns, _ = _load(store, session_id)
    assert session.current_turn == 1
    assert len(turns) == 1
    assert turns[0].answer_text == ""

    questions.error = None
    retried = orch.submit_turn(session_id, _answer(1), None)
    assert retried.next_turn_index == 2


def test_owner_checks(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    owned = _start(orch, caller="alice").interview_id
    anonymous = _start(orch).interview_id

    with pytest.raises(Forbidden):
        orch.submit_turn(owned, _answer(1), "bob")
    with pytest.raises(Forbidden):
        orch.submit_turn(owned, _answer(1), None)
    with pytest.raises(NotFound):
        orch.submit_turn("intv_missing", _answer(1), "alice")

    assert orch.submit_turn(anonymous, _answer(1), "bob").next_turn_index == 2


def test_tenth_answer_completes_session(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    session_id = _start(orch).interview_id

    for turn in range(1, 10):
        orch.submit_turn(session_id, _answer(turn), None)
    result = orch.submit_turn(session_id, _answer(10), None)

    assert result.status == "ANALYZING"
    assert result.next_turn_index is None
    assert result.next_question is None
    assert dispatcher.dispatched == [session_id]
    assert len(questions.requests) == 10

    session, turns, report = _load(store, session_id)
    assert session.status == "analyzing"
    assert session.current_turn == 10
    assert session.ended_at == FIXED_NOW
    assert len(turns) == 10
    assert all(turn.answered for turn in turns)
    assert report.status == "analyzing"
    assert report.generated_at is None
    assert report.result is None

    with pytest.raises(InvalidState):
        orch.submit_turn(session_id, _answer(10), None)


def _finished_session(store, session_id: str, status: str, answered: bool = True) -> None:
    with store.transaction() as tx:
        tx.insert_session(
            SessionRecord(
                session_id=session_id,
                main_topic_id="backend",
                sub_topic_ids=["db"],
                status=status,
                current_turn=10,
                started_at=FIXED_NOW,
                ended_at=FIXED_NOW + dt.timedelta(minutes=5),
                turn_limit_sec=60,
                total_limit_sec=600,
                created_at=FIXED_NOW,
            )
        )
        tx.insert_turn(
            TurnRecord(
                session_id=session_id,
                turn_index=1,
                question_text="What is an index?",
                answer_text="A lookup structure." if answered else "",
            )
        )


def test_regenerate_resets_report_and_dispatches(store, questions, dispatcher, test_settings):
    from session_reports.pipeline import reset_report
    from storage.models import ReportRecord

    orch = _orchestrator(store, questions, dispatcher, test_settings)
    _finished_session(store, "intv_done", "done")
    with store.transaction() as tx:
        reset_report(tx, "intv_done", FIXED_NOW)
        tx.upsert_report(
            ReportRecord(
                session_id="intv_done",
                status="done",
                total_score=80,
                generated_at=FIXED_NOW,
                result={"totalScore": 80},
                created_at=FIXED_NOW,
            )
        )

    result = orch.regenerate_report("intv_done", None)

    assert result.status == "ANALYZING"
    assert dispatcher.dispatched == ["intv_done"]
    session, _, report = _load(store, "intv_done")
    assert session.status == "analyzing"
    assert report.status == "analyzing"
    assert report.generated_at is None
    assert report.result is None
    assert report.total_score is None


def test_regenerate_guards(store, questions, dispatcher, test_settings):
    orch = _orchestrator(store, questions, dispatcher, test_settings)
    in_progress = _start(orch).interview_id
    _finished_session(store, "intv_silent", "failed", answered=False)

    with pytest.raises(InvalidState):
        orch.regenerate_report(in_progress, None)
    with pytest.raises(ValidationError):
        orch.regenerate_report("intv_silent", None)
    with pytest.raises(NotFound):
        orch.regenerate_report("intv_missing", None)
    assert dispatcher.dispatched == []


def test_session_locks_are_released_after_each_transition(store, questions, dispatcher, test_settings):
    locks = SessionLocks()
    orch = InterviewOrchestrator(store, questions, dispatcher, test_settings, locks=locks, clock=lambda: FIXED_NOW)

    session_id = _start(orch).interview_id
    for turn in range(1, 11):
        orch.submit_turn(session_id, _answer(turn), None)
        assert len(locks) == 0

    with pytest.raises(SequenceMismatch):
        orch.submit_turn(_start(orch).interview_id, _answer(4), None)
    assert len(locks) == 0


def test_session_lock_is_shared_while_held_and_dropped_after():
    locks = SessionLocks()
    entered = threading.Event()
    release = threading.Event()
    order = []

    def holder():
        with locks.lock_for("intv_a"):
            order.append("first")
            entered.set()
            release.wait(timeout=5)

    def waiter():
        with locks.lock_for("intv_a"):
            order.append("second")

    first = threading.Thread(target=holder)
    first.start()
    assert entered.wait(timeout=5)
    with locks.lock_for("intv_b"):
        assert len(locks) == 2
    second = threading.Thread(target=waiter)
    second.start()
    second.join(timeout=0.2)
    assert second.is_alive()

    release.set()
    first.join(timeout=5)
    second.join(timeout=5)
    assert order == ["first", "second"]
    assert len(locks) == 0
