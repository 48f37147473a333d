from __future__ import annotations

import datetime as dt

from observability import admin_cli
from storage.models import ReportRecord, SessionRecord
from storage.sqlite_store import SqliteSessionStore

NOW = dt.datetime(2026, 3, 5, 9, 0, tzinfo=dt.timezone.utc)


def _seed(db_path: str) -> None:
    store = SqliteSessionStore(db_path)
    with store.transaction() as tx:
        for minute, (sid, owner, report_status) in enumerate(
            [("intv_one", "alice", "done"), ("intv_two", None, "analyzing")]
        ):
            created = NOW + dt.timedelta(minutes=minute)
            tx.insert_session(
                SessionRecord(
                    session_id=sid,
                    owner_id=owner,
                    title=f"2026-03-05 (0{minute + 1})",
                    main_topic_id="backend",
                    status=report_status,
                    current_turn=10,
                    started_at=created,
                    turn_limit_sec=60,
                    total_limit_sec=600,
                    created_at=created,
                )
            )
            tx.upsert_report(
                ReportRecord(
                    session_id=sid,
                    status=report_status,
                    total_score=80 if report_status == "done" else None,
                    model="solar-pro",
                    prompt_version="v1",
                    generated_at=created if report_status == "done" else None,
                    created_at=created,
                )
            )


def test_tail_sessions_newest_first(tmp_db, capsys):
    _seed(tmp_db)

    admin_cli.main(["--db", tmp_db, "--tail-sessions", "5"])

    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 2
    assert "intv_two owner=- analyzing turn=10 streak=0" in lines[0]
    assert "intv_one owner=alice done" in lines[1]


def test_tail_reports_and_stalled(tmp_db, capsys):
    _seed(tmp_db)

    admin_cli.main(["--db", tmp_db, "--tail-reports", "1", "--stalled", "5"])

    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 2
    assert "intv_two analyzing score=None model=solar-pro/v1" in lines[0]
    assert lines[1].endswith("intv_two stalled")


def test_defaults_to_configured_database(tmp_db, capsys):
    _seed(tmp_db)

    admin_cli.tail_sessions(limit=1)

    assert "intv_two" in capsys.readouterr().out
