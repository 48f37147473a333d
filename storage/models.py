"""Persisted record shapes for sessions, turns and reports."""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

SessionStatus = Literal["in_progress", "analyzing", "done", "failed"]
ReportStatus = Literal["analyzing", "done", "failed"]
QuestionType = Literal["base", "followup"]


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class SessionRecord(BaseModel):
    session_id: str
    owner_id: Optional[str] = None
    title: Optional[str] = None
    main_topic_id: str
    sub_topic_ids: List[str] = Field(default_factory=list)
    status: SessionStatus = "in_progress"
    current_turn: int = Field(default=1, ge=1)
    followup_streak: int = Field(default=0, ge=0)
    started_at: dt.datetime
    ended_at: Optional[dt.datetime] = None
    turn_limit_sec: int
    total_limit_sec: int
    created_at: dt.datetime

    model_config = {"validate_assignment": True}


class TurnRecord(BaseModel):
    session_id: str
    turn_index: int = Field(ge=1)
    question_type: QuestionType = "base"
    question_text: str
    answer_text: str = ""
    submitted_at: Optional[dt.datetime] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)

    @property
    def answered(self) -> bool:
        return bool(self.answer_text.strip())


class ReportRecord(BaseModel):
    report_id: int = 0
    session_id: str
    status: ReportStatus = "analyzing"
    total_score: Optional[float] = None
    duration_sec: Optional[int] = None
    model: Optional[str] = None
    prompt_version: Optional[str] = None
    generated_at: Optional[dt.datetime] = None
    result: Optional[Dict[str, Any]] = None
    created_at: dt.datetime


__all__ = [
    "SessionStatus",
    "ReportStatus",
    "QuestionType",
    "SessionRecord",
    "TurnRecord",
    "ReportRecord",
    "utcnow",
]
