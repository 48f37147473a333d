"""Observability utilities for interview sessions and report generation."""
from .logger import bind_request_id, current_request_id, log_event, reset_request_id
from .tracing import span

__all__ = ["bind_request_id", "current_request_id", "log_event", "reset_request_id", "span"]
