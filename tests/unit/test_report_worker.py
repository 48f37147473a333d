from __future__ import annotations

import datetime as dt
import threading
from collections import Counter
from typing import List

import pytest

from session_reports.pipeline import reset_report
from session_reports.worker import ReportDispatcher
from storage.models import SessionRecord

NOW = dt.datetime(2026, 3, 5, 12, 0, tzinfo=dt.timezone.utc)


class BlockingJob:
    def __init__(self) -> None:
        self.calls: List[str] = []
        self.started = threading.Event()
        self.release = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, session_id: str) -> None:
        with self._lock:
            self.calls.append(session_id)
        self.started.set()
        assert self.release.wait(timeout=5)


def _analyzing(store, session_id: str, minute: int) -> None:
    created = NOW + dt.timedelta(minutes=minute)
    with store.transaction() as tx:
        tx.insert_session(
            SessionRecord(
                session_id=session_id,
                main_topic_id="backend",
                sub_topic_ids=["db"],
                status="analyzing",
                current_turn=10,
                started_at=created,
                turn_limit_sec=60,
                total_limit_sec=600,
                created_at=created,
            )
        )
        reset_report(tx, session_id, created)


def test_dispatch_while_running_schedules_one_rerun():
    job = BlockingJob()
    dispatcher = ReportDispatcher(job, max_workers=2)
    try:
        assert dispatcher.dispatch("intv_a") is True
        assert job.started.wait(timeout=5)
        assert dispatcher.dispatch("intv_a") is False
        assert dispatcher.dispatch("intv_a") is False
        assert dispatcher.dispatch("intv_b") is True
        job.release.set()
        dispatcher.join(timeout=5)
    finally:
        dispatcher.shutdown()

    assert Counter(job.calls) == {"intv_a": 2, "intv_b": 1}
    assert dispatcher.pending() == 0


def test_queued_session_is_not_dispatched_twice():
    job = BlockingJob()
    dispatcher = ReportDispatcher(job, max_workers=1)
    try:
        dispatcher.dispatch("intv_first")
        assert job.started.wait(timeout=5)
        assert dispatcher.dispatch("intv_second") is True
        assert dispatcher.dispatch("intv_second") is False
        assert dispatcher.pending() == 2
        job.release.set()
        dispatcher.join(timeout=5)
    finally:
        dispatcher.shutdown()

    assert job.calls == ["intv_first", "intv_second"]


def test_failing_job_does_not_poison_the_pool():
    calls: List[str] = []

    def job(session_id: str) -> None:
        calls.append(session_id)
        if session_id == "intv_bad":
            raise RuntimeError("boom")

    dispatcher = ReportDispatcher(job, max_workers=1)
    try:
        dispatcher.dispatch("intv_bad")
        dispatcher.join(timeout=5)
        assert dispatcher.dispatch("intv_bad") is True
        dispatcher.dispatch("intv_good")
        dispatcher.join(timeout=5)
    finally:
        dispatcher.shutdown()

    assert calls == ["intv_bad", "intv_bad", "intv_good"]


def test_sweep_dispatches_stalled_reports_oldest_first(store):
    _analyzing(store, "intv_late", minute=5)
    _analyzing(store, "intv_early", minute=1)
    _analyzing(store, "intv_third", minute=9)
    calls: List[str] = []
    dispatcher = ReportDispatcher(calls.append, store=store, max_workers=1, sweep_batch=2)
    try:
        assert dispatcher.sweep_once() == 2
        dispatcher.join(timeout=5)
    finally:
        dispatcher.shutdown()

    assert calls == ["intv_early", "intv_late"]


def test_sweep_without_store_is_a_no_op():
    dispatcher = ReportDispatcher(lambda _: None)
    try:
        assert dispatcher.sweep_once() == 0
    finally:
        dispatcher.shutdown()


def test_background_sweeper_runs_when_interval_given(store):
    _analyzing(store, "intv_stalled", minute=0)
    seen = threading.Event()
    dispatcher = ReportDispatcher(lambda _: seen.set(), store=store, sweep_interval_s=0.01)
    dispatcher.start()
    try:
        assert seen.wait(timeout=5)
    finally:
        dispatcher.shutdown()


def test_dispatch_after_shutdown_fails():
    dispatcher = ReportDispatcher(lambda _: None)
    dispatcher.shutdown()

    with pytest.raises(RuntimeError):
        dispatcher.dispatch("intv_late")
