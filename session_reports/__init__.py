from __future__ import annotations  # Session report package exports

from .parsing import parse_report_json
from .pipeline import ReportPipeline, reset_report
from .projections import QueryProjections
from .prompt import build_report_prompt
from .view import ReportView, normalize_report_view
from .worker import ReportDispatcher

__all__ = [
    "QueryProjections",
    "ReportDispatcher",
    "ReportPipeline",
    "ReportView",
    "build_report_prompt",
    "normalize_report_view",
    "parse_report_json",
    "reset_report",
]
