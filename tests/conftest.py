import os
import sys
import tempfile
from pathlib import Path
from typing import Callable, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_BOOT_DIR = tempfile.mkdtemp(prefix="interview-tests-")
os.environ.setdefault("DB_PATH", os.path.join(_BOOT_DIR, "boot.db"))
os.environ.setdefault("ENABLE_FILE_LOGS", "0")
os.environ.setdefault("APP_ENV", "test")

from agents.types import GeneratedQuestion, QuestionRequest
from config.settings import Settings, settings
from storage.memory import InMemorySessionStore
from storage.migrate import migrate
from storage.sqlite_store import SqliteSessionStore


@pytest.fixture(autouse=True)
def tmp_db(monkeypatch):
    td = tempfile.TemporaryDirectory()
    db_path = os.path.join(td.name, "test.db")
    monkeypatch.setattr(settings, "DB_PATH", db_path, raising=False)
    migrate(db_path)
    try:
        yield db_path
    finally:
        td.cleanup()


class FakeQuestionGenerator:
    """Records every request and answers with numbered questions."""

    def __init__(self) -> None:
        self.requests: List[QuestionRequest] = []
        self.error: Optional[Exception] = None

    def generate_question(self, request: QuestionRequest) -> GeneratedQuestion:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        kind = "followup" if request.is_followup else "base"
        return GeneratedQuestion(
            question_id=f"q_test_{request.turn_index}",
            text=f"{kind} question {request.turn_index}?",
        )


class FakeReportGenerator:
    model = "fake-model"

    def __init__(self, reply: str = "", error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []

    def generate_report(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


class RecordingDispatcher:
    """Dispatcher double that records session ids and optionally runs a callback inline."""

    def __init__(self, run: Optional[Callable[[str], object]] = None) -> None:
        self.dispatched: List[str] = []
        self.run = run

    def dispatch(self, session_id: str) -> bool:
        self.dispatched.append(session_id)
        if self.run is not None:
            self.run(session_id)
        return True

    def start(self) -> None:
        pass

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        pass


@pytest.fixture
def test_settings() -> Settings:
    return Settings(APP_ENV="test", _env_file=None)


@pytest.fixture
def questions() -> FakeQuestionGenerator:
    return FakeQuestionGenerator()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_db):
    if request.param == "memory":
        return InMemorySessionStore()
    return SqliteSessionStore(tmp_db)
