"""Read-side views over sessions and their reports."""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from interview.access import ensure_access
from interview.errors import Forbidden, NotFound, ValidationError
from interview.models import ApiStatus, CamelModel, api_status
from storage.base import SessionStore
from storage.models import ReportRecord, ReportStatus, SessionRecord, TurnRecord

from .pipeline import duration_seconds
from .view import (
    Number,
    ReportView,
    as_dict,
    as_finite_number,
    as_number,
    iso,
    normalize_report_view,
    string_list,
)

RECORD_METRIC_KEYS: Dict[str, str] = {
    "LOGIC": "logic",
    "SPECIFICITY": "clarity",
    "EYE_CONTACT": "eyeContact",
    "VOICE_TONE": "voice",
    "STAR_METHOD": "star",
    "TIME_MANAGEMENT": "time",
}
SUMMARY_SKILL_KEYS: Dict[str, List[str]] = {
    "LOGIC": ["logic"],
    "SPECIFICITY": ["specificity"],
    "VOICE_TONE": ["delivery", "voice"],
    "EYE_CONTACT": ["eyeContact"],
    "STAR_METHOD": ["structure"],
}


class PageMeta(CamelModel):
    number: int
    size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool


class ReportListItem(CamelModel):
    interview_id: str
    title: Optional[str] = None
    interview_status: ApiStatus
    report_status: Optional[ReportStatus] = None
    total_score: Optional[Number] = None
    generated_at: Optional[str] = None
    created_at: str


class ReportPage(CamelModel):
    items: List[ReportListItem] = Field(default_factory=list)
    page: PageMeta


class ReportDetailBody(CamelModel):
    status: ReportStatus
    total_score: Optional[Number] = None
    duration_sec: Optional[int] = None
    model: Optional[str] = None
    prompt_version: Optional[str] = None
    generated_at: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    view: ReportView


class ReportDetail(CamelModel):
    interview_id: str
    title: Optional[str] = None
    interview_status: ApiStatus
    report: Optional[ReportDetailBody] = None


class RecordMetrics(CamelModel):
    logic: Number = 0
    clarity: Number = 0
    eye_contact: Number = 0
    voice: Number = 0
    star: Number = 0
    time: Number = 0


class InterviewRecord(CamelModel):
    id: int
    score: Number
    date: str
    duration: str
    question_progress: str
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    metrics: RecordMetrics


class ScorePoint(CamelModel):
    date: str
    score: Number


class SummarySkills(CamelModel):
    logic: Number = 0
    specificity: Number = 0
    delivery: Number = 0
    eye_contact: Number = 0
    voice: Number = 0
    structure: Number = 0


class ReportSummary(CamelModel):
    skills: SummarySkills
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)


class TurnMetric(CamelModel):
    question: str
    time: int
    eye_off: int
    silence: int


def format_duration(total_sec: Optional[float]) -> str:
    safe = int(total_sec) if total_sec is not None and math.isfinite(total_sec) and total_sec > 0 else 0
    return f"{safe // 60}m {safe % 60:02d}s"


def report_score(report: ReportRecord) -> Optional[Number]:
    """Column score first, then ``result.totalScore``."""

    if report.total_score is not None:
        return report.total_score
    return as_finite_number((report.result or {}).get("totalScore"))


def _competency_scores(result: Optional[Dict[str, Any]]) -> Dict[str, Number]:
    competencies = as_dict((result or {}).get("competencies")) or {}
    items = competencies.get("items")
    scores: Dict[str, Number] = {}
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict) or not isinstance(item.get("key"), str):
            continue
        score = as_finite_number(item.get("score"))
        if score is not None:
            scores[item["key"]] = score
    return scores


def _percent(value: Any) -> Optional[float]:
    number = as_finite_number(value)
    return number * 100 if number is not None else None


def _eye_off_percent(metrics: Dict[str, Any]) -> float:
    face = as_dict(metrics.get("faceMetrics")) or {}
    direct = as_finite_number(face.get("eyeOffPercent"))
    if direct is not None:
        return direct
    away = _percent((as_dict(face.get("expressionDistribution")) or {}).get("away"))
    return away if away is not None else 0


def _silence_percent(metrics: Dict[str, Any]) -> float:
    voice = as_dict(metrics.get("voiceMetrics")) or {}
    distribution = as_dict(voice.get("timeDistribution")) or {}
    pause = as_finite_number(distribution.get("pause"))
    speaking = as_finite_number(distribution.get("speaking"))
    if pause is not None and speaking is not None and pause + speaking > 0:
        return pause / (pause + speaking) * 100
    ratio = _percent(voice.get("silenceRatio"))
    return ratio if ratio is not None else 0


class QueryProjections:
    """Read models for report listings, history records and score trends."""

    def __init__(self, store: SessionStore, *, include_anonymous: bool = True, max_turns: int = 10) -> None:
        self._store = store
        self._include_anonymous = include_anonymous
        self._max_turns = max_turns

    def get_report(self, session_id: str, caller: Optional[str]) -> ReportDetail:
        with self._store.read() as tx:
            session = ensure_access(tx.get_session(session_id), session_id, caller)
            report = tx.get_report(session_id)
            turns = tx.list_turns(session_id)
        body = None
        if report is not None:
            body = ReportDetailBody(
                status=report.status,
                total_score=report.total_score,
                duration_sec=report.duration_sec,
                model=report.model,
                prompt_version=report.prompt_version,
                generated_at=iso(report.generated_at),
                result=report.result,
                view=normalize_report_view(report, session, turns),
            )
        return ReportDetail(
            interview_id=session.session_id,
            title=session.title,
            interview_status=api_status(session.status),
            report=body,
        )

    def list_reports(self, caller: Optional[str], page: int = 1, size: int = 10) -> ReportPage:
        if page < 1 or size < 1:
            raise ValidationError("page and size must be positive", details={"page": page, "size": size})
        total = self._store.count_sessions(owner_id=caller, include_anonymous=self._include_anonymous)
        sessions = self._store.list_sessions(
            owner_id=caller,
            include_anonymous=self._include_anonymous,
            offset=(page - 1) * size,
            limit=size,
        )
        items: List[ReportListItem] = []
        with self._store.read() as tx:
            for session in sessions:
                report = tx.get_report(session.session_id)
                items.append(
                    ReportListItem(
                        interview_id=session.session_id,
                        title=session.title,
                        interview_status=api_status(session.status),
                        report_status=report.status if report else None,
                        total_score=report_score(report) if report else None,
                        generated_at=iso(report.generated_at) if report else None,
                        created_at=session.created_at.isoformat(),
                    )
                )
        total_pages = math.ceil(total / size) if total else 0
        return ReportPage(
            items=items,
            page=PageMeta(
                number=page,
                size=size,
                total_items=total,
                total_pages=total_pages,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        )

    def records(self, caller: Optional[str]) -> List[InterviewRecord]:
        records: List[InterviewRecord] = []
        for session, report, turns in self._done(caller, ascending=False):
            answered = sum(1 for turn in turns if turn.answered)
            duration = report.duration_sec if report.duration_sec is not None else duration_seconds(session)
            result = report.result or {}
            competency = _competency_scores(report.result)
            records.append(
                InterviewRecord(
                    id=max(report.report_id, 0),
                    score=report_score(report) or 0,
                    date=(report.generated_at or session.created_at).date().isoformat(),
                    duration=format_duration(duration),
                    question_progress=f"{answered}/{self._max_turns} questions answered",
                    strengths=string_list(result.get("strengths")),
                    improvements=string_list(result.get("weaknesses")),
                    metrics=RecordMetrics.model_validate(
                        {alias: competency[key] for key, alias in RECORD_METRIC_KEYS.items() if key in competency}
                    ),
                )
            )
        return records

    def score_trend(self, caller: Optional[str]) -> List[ScorePoint]:
        return [
            ScorePoint(
                date=(report.generated_at or session.created_at).strftime("%m/%d"),
                score=report_score(report) or 0,
            )
            for session, report, _ in self._done(caller, ascending=True)
        ]

    def report_summary(self, report_id: int, caller: Optional[str]) -> ReportSummary:
        report, _ = self._report_for(report_id, caller)
        result = report.result or {}
        competency = _competency_scores(report.result)
        skills: Dict[str, Number] = {}
        for key, aliases in SUMMARY_SKILL_KEYS.items():
            for alias in aliases:
                if key in competency:
                    skills[alias] = competency[key]
        return ReportSummary(
            skills=SummarySkills.model_validate(skills),
            strengths=string_list(result.get("strengths"))[:3],
            improvements=string_list(result.get("weaknesses"))[:3],
        )

    def turn_metrics(self, report_id: int, caller: Optional[str]) -> List[TurnMetric]:
        report, session = self._report_for(report_id, caller)
        with self._store.read() as tx:
            turns = tx.list_turns(session.session_id)
        return [
            TurnMetric(
                question=f"Q{turn.turn_index}",
                time=round(as_number(turn.metrics.get("answerDuration")) or 0),
                eye_off=round(_eye_off_percent(turn.metrics)),
                silence=round(_silence_percent(turn.metrics)),
            )
            for turn in turns
        ]

    def _report_for(self, report_id: int, caller: Optional[str]) -> Tuple[ReportRecord, SessionRecord]:
        if report_id <= 0:
            raise ValidationError("Invalid report id", details={"reportId": report_id})
        report = self._store.get_report_by_id(report_id)
        if report is None:
            raise NotFound(f"Report not found: {report_id}")
        with self._store.read() as tx:
            session = tx.get_session(report.session_id)
        if session is None:
            raise NotFound(f"Report not found: {report_id}")
        if session.owner_id is not None and session.owner_id != caller:
            raise Forbidden("You do not have access to this report")
        return report, session

    def _done(
        self, caller: Optional[str], *, ascending: bool
    ) -> List[Tuple[SessionRecord, ReportRecord, List[TurnRecord]]]:
        sessions = self._store.list_sessions(
            owner_id=caller,
            include_anonymous=self._include_anonymous,
            report_status="done",
            ascending=ascending,
        )
        rows: List[Tuple[SessionRecord, ReportRecord, List[TurnRecord]]] = []
        with self._store.read() as tx:
            for session in sessions:
                report = tx.get_report(session.session_id)
                if report is not None:
                    rows.append((session, report, tx.list_turns(session.session_id)))
        return rows


__all__ = [
    "QueryProjections",
    "ReportDetail",
    "ReportPage",
    "InterviewRecord",
    "ScorePoint",
    "ReportSummary",
    "TurnMetric",
    "format_duration",
    "report_score",
]
