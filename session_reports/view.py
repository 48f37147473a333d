"""Total projection of a stored report into the UI-facing report view."""
from __future__ import annotations

import datetime as dt
import math
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import Field

from interview.models import CamelModel
from storage.models import QuestionType, ReportRecord, SessionRecord, TurnRecord

PLACEHOLDER_SUMMARY = "The analysis did not produce enough information to write a summary yet."
MAX_ACTION_ITEMS = 6

Number = Union[int, float]


class ReportHeader(CamelModel):
    title: str
    summary: str
    generated_at: Optional[str] = None


class Competency(CamelModel):
    key: str
    label: str
    level: str
    score: Optional[Number] = None
    comment: str = ""


class ReportSummaryView(CamelModel):
    total_score: Optional[Number] = None
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    competencies: List[Competency] = Field(default_factory=list)


class TextPatternIssue(CamelModel):
    type: str
    severity: str
    description: str = ""
    affected_turn_indexes: List[Number] = Field(default_factory=list)


class TurnScore(CamelModel):
    turn_index: int
    score: Optional[Number] = None


class ReportAnalysis(CamelModel):
    text_pattern_issues: List[TextPatternIssue] = Field(default_factory=list)
    per_turn_scores: List[TurnScore] = Field(default_factory=list)


class TurnSuggestion(CamelModel):
    turn_index: int
    question: str
    weakness: Optional[str] = None
    suggestion: Optional[str] = None


class ReportCoaching(CamelModel):
    action_items: List[str] = Field(default_factory=list)
    turn_suggestions: List[TurnSuggestion] = Field(default_factory=list)


class Highlight(CamelModel):
    strength: Optional[str] = None
    weakness: Optional[str] = None
    suggestion: Optional[str] = None


class RecordTurn(CamelModel):
    turn_index: int
    question_type: QuestionType
    question_text: str
    answer_text: str
    score: Optional[Number] = None
    feedback: Optional[str] = None
    highlight: Optional[Highlight] = None
    submitted_at: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None


class ReportTranscript(CamelModel):
    turns: List[RecordTurn] = Field(default_factory=list)


class ReportView(CamelModel):
    header: ReportHeader
    summary: ReportSummaryView
    analysis: ReportAnalysis
    coaching: ReportCoaching
    record: ReportTranscript


# Coercion helpers shared with the read-side projections.


def as_dict(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


def as_number(value: Any) -> Optional[Number]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def as_finite_number(value: Any) -> Optional[Number]:
    """Like ``as_number`` but also accepts numeric strings."""

    number = as_number(value)
    if number is not None or not isinstance(value, str):
        return number
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def as_string(value: Any, fallback: str = "") -> str:
    return value if isinstance(value, str) else fallback


def as_optional_string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def number_list(value: Any) -> List[Number]:
    if not isinstance(value, list):
        return []
    return [item for item in value if as_number(item) is not None]


def iso(value: Optional[dt.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _per_turn_feedback(report: Dict[str, Any]) -> Dict[int, Dict[str, Any]]:
    feedback: Dict[int, Dict[str, Any]] = {}
    items = report.get("perTurnFeedback")
    for item in items if isinstance(items, list) else []:
        entry = as_dict(item)
        if entry is None:
            continue
        turn_index = as_number(entry.get("turnIndex"))
        if not turn_index or turn_index != int(turn_index):
            continue
        highlight = as_dict(entry.get("highlight"))
        text = entry.get("feedback")
        feedback[int(turn_index)] = {
            "score": as_number(entry.get("score")),
            "feedback": text if isinstance(text, str) and text.strip() else None,
            "highlight": Highlight(
                strength=as_optional_string(highlight.get("strength")),
                weakness=as_optional_string(highlight.get("weakness")),
                suggestion=as_optional_string(highlight.get("suggestion")),
            )
            if highlight is not None
            else None,
        }
    return feedback


def _competencies(report: Dict[str, Any]) -> List[Competency]:
    container = as_dict(report.get("competencies")) or {}
    items = container.get("items") if isinstance(container.get("items"), list) else []
    return [
        Competency(
            key=as_string(item.get("key"), "UNKNOWN"),
            label=as_string(item.get("label"), "Unclassified"),
            level=as_string(item.get("level"), "Average"),
            score=as_number(item.get("score")),
            comment=as_string(item.get("comment")),
        )
        for item in items
        if isinstance(item, dict)
    ]


def _text_pattern_issues(report: Dict[str, Any]) -> List[TextPatternIssue]:
    container = as_dict(report.get("textPatternAnalysis")) or {}
    issues = container.get("issues") if isinstance(container.get("issues"), list) else []
    return [
        TextPatternIssue(
            type=as_string(item.get("type"), "Other"),
            severity=as_string(item.get("severity"), "INFO"),
            description=as_string(item.get("description")),
            affected_turn_indexes=number_list(item.get("affectedTurnIndexes")),
        )
        for item in issues
        if isinstance(item, dict)
    ]


def _dedupe(items: List[str], limit: int) -> List[str]:
    seen: List[str] = []
    for item in items:
        if item.strip() and item not in seen:
            seen.append(item)
        if len(seen) == limit:
            break
    return seen


def normalize_report_view(
    report: Optional[ReportRecord],
    session: SessionRecord,
    turns: Sequence[TurnRecord],
) -> ReportView:
    """Project a stored report and its transcript into a ``ReportView``.

    Every field falls back to an empty or placeholder value when the stored
    payload is missing, malformed or partial, so this never raises on report
    content.
    """

    result = as_dict(report.result if report is not None else None) or {}
    feedback = _per_turn_feedback(result)

    record_turns: List[RecordTurn] = []
    for turn in sorted(turns, key=lambda t: t.turn_index):
        entry = feedback.get(turn.turn_index, {})
        record_turns.append(
            RecordTurn(
                turn_index=turn.turn_index,
                question_type=turn.question_type,
                question_text=turn.question_text,
                answer_text=turn.answer_text,
                score=entry.get("score"),
                feedback=entry.get("feedback"),
                highlight=entry.get("highlight"),
                submitted_at=iso(turn.submitted_at),
                metrics=dict(turn.metrics) if turn.metrics else None,
            )
        )

    weaknesses = string_list(result.get("weaknesses"))
    suggestions = [turn.highlight.suggestion for turn in record_turns if turn.highlight and turn.highlight.suggestion]
    total_score = as_number(result.get("totalScore"))
    if total_score is None and report is not None:
        total_score = report.total_score

    return ReportView(
        header=ReportHeader(
            title=session.title or f"{session.session_id} interview report",
            summary=as_string(result.get("summary"), PLACEHOLDER_SUMMARY),
            generated_at=iso(report.generated_at) if report is not None else None,
        ),
        summary=ReportSummaryView(
            total_score=total_score,
            strengths=string_list(result.get("strengths")),
            weaknesses=weaknesses,
            competencies=_competencies(result),
        ),
        analysis=ReportAnalysis(
            text_pattern_issues=_text_pattern_issues(result),
            per_turn_scores=[TurnScore(turn_index=t.turn_index, score=t.score) for t in record_turns],
        ),
        coaching=ReportCoaching(
            action_items=_dedupe(weaknesses + suggestions, MAX_ACTION_ITEMS),
            turn_suggestions=[
                TurnSuggestion(
                    turn_index=t.turn_index,
                    question=t.question_text,
                    weakness=t.highlight.weakness,
                    suggestion=t.highlight.suggestion,
                )
                for t in record_turns
                if t.highlight and (t.highlight.weakness or t.highlight.suggestion)
            ],
        ),
        record=ReportTranscript(turns=record_turns),
    )


__all__ = [
    "ReportView",
    "ReportHeader",
    "ReportSummaryView",
    "Competency",
    "TextPatternIssue",
    "TurnScore",
    "ReportAnalysis",
    "TurnSuggestion",
    "ReportCoaching",
    "Highlight",
    "RecordTurn",
    "ReportTranscript",
    "PLACEHOLDER_SUMMARY",
    "normalize_report_view",
    "as_dict",
    "as_number",
    "as_finite_number",
    "as_string",
    "string_list",
    "iso",
]
