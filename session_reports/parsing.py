"""Recover a JSON object from an untrusted model reply."""
from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def parse_report_json(raw: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object recoverable from ``raw`` or ``None``.

    Stages, in order: strip a Markdown code fence and parse; if that yields a
    JSON string, parse the string again; finally slice from the first ``{`` to
    the last ``}``. Arrays and scalars never count as a result.
    """

    text = (raw or "").strip()
    if not text:
        return None

    fenced = _FENCE.search(text)
    candidate = (fenced.group(1).strip() if fenced else "") or text

    first = _loads(candidate)
    if isinstance(first, dict):
        return first

    if isinstance(first, str):
        second = _loads(first)
        if isinstance(second, dict):
            return second

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start != -1 and end > start:
        sliced = _loads(candidate[start : end + 1])
        if isinstance(sliced, dict):
            return sliced

    return None


__all__ = ["parse_report_json"]
