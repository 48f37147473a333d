from __future__ import annotations

import datetime as dt
import json

from interview.locks import SessionLocks
from llm_gateway import LlmGatewayError
from session_reports.pipeline import ReportPipeline, reset_report
from session_reports.prompt import build_report_prompt
from storage.memory import InMemorySessionStore, MemoryTransaction
from storage.models import SessionRecord, TurnRecord
from storage.sqlite_store import SqliteSessionStore

from tests.conftest import FakeReportGenerator

STARTED = dt.datetime(2026, 3, 5, 9, 0, tzinfo=dt.timezone.utc)
GENERATED = dt.datetime(2026, 3, 5, 9, 20, tzinfo=dt.timezone.utc)

REPORT = {
    "version": "v1",
    "totalScore": 82,
    "summary": "Strong fundamentals.",
    "strengths": ["Structure"],
    "weaknesses": ["Numbers"],
}


def _seed(store, session_id="intv_pipe"):
    with store.transaction() as tx:
        tx.insert_session(
            SessionRecord(
                session_id=session_id,
                title="Backend round",
                main_topic_id="backend",
                sub_topic_ids=["db", "cache"],
                status="analyzing",
                current_turn=10,
                started_at=STARTED,
                ended_at=STARTED + dt.timedelta(minutes=7, seconds=30),
                turn_limit_sec=60,
                total_limit_sec=600,
                created_at=STARTED,
            )
        )
        tx.insert_turn(
            TurnRecord(
                session_id=session_id,
                turn_index=1,
                question_text="Explain indexes.",
                answer_text="B-trees speed lookups.",
                metrics={"answerDuration": 20},
            )
        )
        tx.insert_turn(
            TurnRecord(session_id=session_id, turn_index=2, question_text="Unanswered question", answer_text="  ")
        )
        reset_report(tx, session_id, STARTED)
    return session_id


def _state(store, session_id):
    with store.transaction() as tx:
        return tx.get_session(session_id), tx.get_report(session_id)


def test_generate_stores_parsed_result(store):
    session_id = _seed(store)
    generator = FakeReportGenerator(reply="```json\n" + json.dumps(REPORT) + "\n```")
    pipeline = ReportPipeline(store, generator, clock=lambda: GENERATED)

    pipeline.generate(session_id)

    session, report = _state(store, session_id)
    assert session.status == "done"
    assert report.status == "done"
    assert report.total_score == 82
    assert report.duration_sec == 450
    assert report.model == "fake-model"
    assert report.prompt_version == "v1"
    assert report.generated_at == GENERATED
    assert report.result["summary"] == "Strong fundamentals."
    assert report.result["_rawText"].startswith("```json")


def test_prompt_only_carries_answered_turns(store):
    session_id = _seed(store)
    generator = FakeReportGenerator(reply=json.dumps(REPORT))

    ReportPipeline(store, generator).generate(session_id)

    prompt = generator.prompts[0]
    assert "Explain indexes." in prompt
    assert "Unanswered question" not in prompt
    assert "sessionId: intv_pipe" in prompt
    assert "LOGIC 25 points" in prompt


def test_generate_is_idempotent_once_done(store):
    session_id = _seed(store)
    generator = FakeReportGenerator(reply=json.dumps(REPORT))
    pipeline = ReportPipeline(store, generator)

    pipeline.generate(session_id)
    pipeline.generate(session_id)

    assert len(generator.prompts) == 1


def test_unparseable_reply_is_kept_as_raw_text(store):
    session_id = _seed(store)
    pipeline = ReportPipeline(store, FakeReportGenerator(reply="I cannot produce JSON today."))

    pipeline.generate(session_id)

    session, report = _state(store, session_id)
    assert session.status == "done"
    assert report.status == "done"
    assert report.total_score is None
    assert report.result == {"_rawText": "I cannot produce JSON today."}


def test_deeply_nested_reply_is_kept_as_raw_text(store):
    session_id = _seed(store)
    raw = "[" * 100000
    pipeline = ReportPipeline(store, FakeReportGenerator(reply=raw))

    pipeline.generate(session_id)

    session, report = _state(store, session_id)
    assert session.status == "done"
    assert report.status == "done"
    assert report.total_score is None
    assert report.result == {"_rawText": raw}


def test_lone_surrogate_in_reply_is_stored(tmp_db):
    store = SqliteSessionStore(tmp_db)
    session_id = _seed(store)
    raw = '{"totalScore": 70, "summary": "x \\ud800 y"}'
    pipeline = ReportPipeline(store, FakeReportGenerator(reply=raw))

    pipeline.generate(session_id)

    session, report = _state(store, session_id)
    assert session.status == "done"
    assert report.status == "done"
    assert report.total_score == 70
    assert report.result["summary"] == "x \ud800 y"
    assert report.result["_rawText"] == raw


def test_write_failure_marks_report_failed(monkeypatch):
    store = InMemorySessionStore()
    session_id = _seed(store)
    upsert = MemoryTransaction.upsert_report

    def failing_upsert(self, record):
        if record.status == "done":
            raise ValueError("cannot encode result")
        return upsert(self, record)

    monkeypatch.setattr(MemoryTransaction, "upsert_report", failing_upsert)
    result = ReportPipeline(store, FakeReportGenerator(reply=json.dumps(REPORT))).generate(session_id)

    session, report = _state(store, session_id)
    assert result.status == "failed"
    assert session.status == "failed"
    assert report.status == "failed"
    assert report.result == {"error": "cannot encode result"}


def test_generate_releases_session_lock(store):
    session_id = _seed(store)
    locks = SessionLocks()
    pipeline = ReportPipeline(store, FakeReportGenerator(reply=json.dumps(REPORT)), locks=locks)

    pipeline.generate(session_id)
    pipeline.generate(session_id)

    assert len(locks) == 0


def test_non_numeric_total_score_is_not_stored(store):
    session_id = _seed(store)
    pipeline = ReportPipeline(store, FakeReportGenerator(reply=json.dumps({"totalScore": "eighty"})))

    pipeline.generate(session_id)

    assert _state(store, session_id)[1].total_score is None


def test_provider_failure_marks_report_failed(store):
    session_id = _seed(store)
    generator = FakeReportGenerator(error=LlmGatewayError("LLM returned status 400", status_code=400))
    pipeline = ReportPipeline(store, generator, clock=lambda: GENERATED)

    result = pipeline.generate(session_id)

    session, report = _state(store, session_id)
    assert result.status == "failed"
    assert session.status == "failed"
    assert report.status == "failed"
    assert report.result == {"error": "LLM returned status 400"}
    assert report.duration_sec == 450
    assert report.generated_at == GENERATED


def test_unknown_session_is_ignored(store):
    generator = FakeReportGenerator(reply="{}")
    assert ReportPipeline(store, generator).generate("intv_missing") is None
    assert generator.prompts == []


def test_report_keeps_its_id_across_regeneration(store):
    session_id = _seed(store)
    pipeline = ReportPipeline(store, FakeReportGenerator(reply=json.dumps(REPORT)))
    first = pipeline.generate(session_id)

    with store.transaction() as tx:
        reset = reset_report(tx, session_id, GENERATED)
    second = pipeline.generate(session_id)

    assert reset.report_id == first.report_id == second.report_id
    assert reset.status == "analyzing"
    assert reset.result is None


def test_build_report_prompt_lists_fixed_enums():
    session = SessionRecord(
        session_id="intv_p",
        main_topic_id="ml",
        sub_topic_ids=["transformers"],
        started_at=STARTED,
        turn_limit_sec=60,
        total_limit_sec=600,
        created_at=STARTED,
    )

    prompt = build_report_prompt(session, [])

    for key in ("LOGIC", "TIME_MANAGEMENT", "SPECIFICITY", "STAR_METHOD", "EYE_CONTACT", "VOICE_TONE"):
        assert key in prompt
    assert '"INFO", "WARNING", "CRITICAL"' in prompt
    assert "title: null" in prompt
    assert '"mainTopicId": "ml"' in prompt
    assert prompt.rstrip().endswith("[]")
