from __future__ import annotations

import json

import pytest

from session_reports.parsing import parse_report_json


def test_plain_json_object():
    assert parse_report_json('{"totalScore": 81, "summary": "ok"}') == {"totalScore": 81, "summary": "ok"}


def test_code_fence_is_stripped():
    raw = 'Here is the report:\n```json\n{"totalScore": 70}\n```\nThanks'
    assert parse_report_json(raw) == {"totalScore": 70}


def test_uppercase_fence_without_language():
    assert parse_report_json('```\n{"a": 1}\n```') == {"a": 1}


def test_double_encoded_json_string():
    inner = json.dumps({"totalScore": 64, "strengths": ["clear"]})
    assert parse_report_json(json.dumps(inner)) == {"totalScore": 64, "strengths": ["clear"]}


def test_brace_slice_recovers_object_from_prose():
    raw = 'Sure! {"totalScore": 55, "weaknesses": ["vague"]} Let me know.'
    assert parse_report_json(raw) == {"totalScore": 55, "weaknesses": ["vague"]}


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "no json at all",
        "[1, 2, 3]",
        '"just a string"',
        "42",
        "{broken json",
        "} backwards {",
    ],
)
def test_unrecoverable_replies_return_none(raw):
    assert parse_report_json(raw) is None


@pytest.mark.parametrize("raw", ["[" * 100000, '{"a": ' + "[" * 100000 + "}"])
def test_deeply_nested_reply_returns_none(raw):
    assert parse_report_json(raw) is None
