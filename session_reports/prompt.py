"""Evaluation prompt for interview reports."""
from __future__ import annotations

import json
from typing import Dict, List, Sequence

from storage.models import SessionRecord, TurnRecord

COMPETENCY_LABELS: Dict[str, str] = {
    "LOGIC": "Logic",
    "TIME_MANAGEMENT": "Time management",
    "SPECIFICITY": "Specificity",
    "STAR_METHOD": "STAR method",
    "EYE_CONTACT": "Eye contact",
    "VOICE_TONE": "Voice tone",
}
COMPETENCY_LEVELS: List[str] = ["Excellent", "Good", "Average", "Needs improvement"]
SEVERITIES: List[str] = ["INFO", "WARNING", "CRITICAL"]
RUBRIC: List[tuple[str, int, str]] = [
    ("LOGIC", 25, "Is the structure clear (claim, evidence, example; cause, fix, outcome)?"),
    ("SPECIFICITY", 20, "Are there concrete numbers, durations, comparisons or scope?"),
    ("COMMUNICATION", 20, "Is the key point delivered, with terms explained from the listener's view?"),
    ("PROBLEM_SOLVING", 20, "Are alternatives, trade-offs, verification or retrospection included?"),
    ("TIME_MANAGEMENT", 15, "Is the answer neither rambling nor too short?"),
]


def session_topic(session: SessionRecord) -> str:
    return json.dumps(
        {"mainTopicId": session.main_topic_id, "subTopicIds": session.sub_topic_ids},
        ensure_ascii=False,
    )


def answered_turns(turns: Sequence[TurnRecord]) -> List[dict]:
    """Turns that enter the prompt: answered ones only, in turn order."""

    return [
        {
            "turnIndex": turn.turn_index,
            "questionType": turn.question_type,
            "questionText": turn.question_text,
            "answerText": turn.answer_text,
            "metrics": turn.metrics or None,
        }
        for turn in sorted(turns, key=lambda t: t.turn_index)
        if turn.answered
    ]


def _schema_lines() -> List[str]:
    items = [
        f'      {{ "key": "{key}", "label": "{label}", "level": string, "score": number, "comment": string }}'
        for key, label in COMPETENCY_LABELS.items()
    ]
    return [
        "JSON schema (output exactly this structure):",
        "{",
        '  "version": "v1",',
        '  "session": { "sessionId": string, "title": string | null, "topic": string | null },',
        '  "totalScore": number,',
        '  "summary": string,',
        '  "strengths": string[],',
        '  "weaknesses": string[],',
        '  "competencies": {',
        '    "items": [',
        ",\n".join(items),
        "    ]",
        "  },",
        '  "textPatternAnalysis": {',
        '    "issues": [ { "type": string, "severity": string, "description": string, "affectedTurnIndexes": number[] } ]',
        "  },",
        '  "perTurnFeedback": [',
        "    {",
        '      "turnIndex": number,',
        '      "score": number,',
        '      "feedback": string,',
        '      "highlight": { "strength": string | null, "weakness": string | null, "suggestion": string | null }',
        "    }",
        "  ]",
        "}",
    ]


def build_report_prompt(session: SessionRecord, turns: Sequence[TurnRecord]) -> str:
    """Compose the evaluation prompt from a session and its answered turns."""

    lines: List[str] = [
        "You are an experienced technical interview assessor.",
        "Produce an evaluation report from the interview record that a UI can render directly.",
        "",
        "Output rules:",
        "- Output a single JSON object only.",
        "- The first character must be { and the last character must be }.",
        "- No explanations, markdown, code fences, comments or extra text.",
        "- Never wrap the JSON in a string.",
        "- Numbers are numbers, never strings.",
        "- Do not add keys that are not in the schema.",
        "- Use null for unknown or missing values.",
        "- If these rules cannot be followed, output an empty object {}.",
        "",
        "Metrics rules:",
        "- metrics are optional per-turn signals; use them only when present.",
        "- If a metric's key or unit is unclear, do not guess; use null.",
        "- Evaluate from answerText even when metrics are missing.",
        "",
        "Fixed enums (never change):",
        f"- competencyKey: {json.dumps(list(COMPETENCY_LABELS))}",
        f"- competencyLevel: {json.dumps(COMPETENCY_LEVELS)}",
        f"- severity: {json.dumps(SEVERITIES)}",
        "",
        "Scoring (total 0-100):",
    ]
    lines += [f"- {key} {points} points: {question}" for key, points, question in RUBRIC]
    lines.append("")
    lines += _schema_lines()
    lines += [
        "",
        "Generation rules:",
        "- perTurnFeedback has exactly one entry per input turn.",
        "- strengths and weaknesses avoid duplicates and hold 2 to 5 items.",
        "- textPatternAnalysis.issues holds at most 5 items.",
        "- summary is 2 to 4 sentences.",
        "- The competency scores should trend with totalScore.",
        "",
        "Input:",
        f"sessionId: {session.session_id}",
        f"title: {session.title or 'null'}",
        f"topic: {session_topic(session)}",
        "turns(JSON):",
        json.dumps(answered_turns(turns), ensure_ascii=False, default=str),
    ]
    return "\n".join(lines)


__all__ = [
    "COMPETENCY_LABELS",
    "COMPETENCY_LEVELS",
    "SEVERITIES",
    "RUBRIC",
    "answered_turns",
    "build_report_prompt",
    "session_topic",
]
