"""Structured logging for interview sessions and report generation."""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_FILE_LOGS = os.getenv("ENABLE_FILE_LOGS", "1") in ("1", "true", "True")
LOG_FILE = os.getenv("LOG_FILE", "logs/interview.log")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "5242880"))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))

_logger = logging.getLogger("interview")
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_logger.setLevel(LOG_LEVEL)
_logger.propagate = False


def _ensure_handlers() -> None:
    if _logger.handlers:
        return

    # Console: human-readable lines only (stdout)
    human_console = logging.StreamHandler(stream=sys.stdout)
    human_console.setLevel(LOG_LEVEL)
    human_console.setFormatter(
        logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s :: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    _logger.addHandler(human_console)

    if not ENABLE_FILE_LOGS:
        return

    log_dir = os.path.dirname(LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    # JSON file handler
    json_file = logging.handlers.RotatingFileHandler(
        LOG_FILE,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
    )
    json_file.setLevel(LOG_LEVEL)
    json_file.setFormatter(logging.Formatter("%(message)s"))
    json_file.addFilter(lambda record: getattr(record, "is_json", False) is True)
    _logger.addHandler(json_file)

    # Human-readable file handler
    human_file_name = LOG_FILE if LOG_FILE.endswith(".log") else f"{LOG_FILE}.log"
    human_file_name = human_file_name.replace(".log", "-human.log")
    human_file = logging.handlers.RotatingFileHandler(
        human_file_name,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
    )
    human_file.setLevel(LOG_LEVEL)
    human_file.setFormatter(
        logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s :: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    human_file.addFilter(lambda record: getattr(record, "is_json", False) is not True)
    _logger.addHandler(human_file)


def _format_human(evt: dict[str, Any]) -> str:
    base = f"session={evt.get('session_id')} kind={evt.get('kind')}"
    extras: list[str] = []
    for key in ("span", "turn", "type", "status", "streak", "report_id", "ms", "code", "request_id"):
        if key in evt:
            extras.append(f"{key}={evt[key]}")
    return base + (" " + " ".join(extras) if extras else "")


def bind_request_id(request_id: Optional[str]) -> object:
    """Attach a request id to every event logged from the current context."""

    return _request_id.set(request_id)


def reset_request_id(token: object) -> None:
    _request_id.reset(token)  # type: ignore[arg-type]


def current_request_id() -> Optional[str]:
    return _request_id.get()


def log_event(kind: str, session_id: Optional[str], *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit human logs to console and JSON/human logs to files."""

    _ensure_handlers()

    payload: dict[str, Any] = {
        "ts": time.time(),
        "trace": str(uuid.uuid4()),
        "kind": kind,
        "session_id": session_id,
    }
    request_id = _request_id.get()
    if request_id:
        payload["request_id"] = request_id
    payload.update(fields)

    # Human line (console + human file handler)
    human_record = _logger.makeRecord(
        name=_logger.name,
        level=level,
        fn="",
        lno=0,
        msg=_format_human(payload),
        args=(),
        exc_info=None,
    )
    human_record.is_json = False  # type: ignore[attr-defined]
    _logger.handle(human_record)

    if not ENABLE_FILE_LOGS:
        return

    # JSON line (file only)
    json_record = _logger.makeRecord(
        name=_logger.name,
        level=level,
        fn="",
        lno=0,
        msg=json.dumps(payload, ensure_ascii=False, default=str),
        args=(),
        exc_info=None,
    )
    json_record.is_json = True  # type: ignore[attr-defined]
    _logger.handle(json_record)


__all__ = ["bind_request_id", "current_request_id", "log_event", "reset_request_id"]
