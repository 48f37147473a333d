"""Domain errors raised by the orchestrator, pipeline and projections."""
from __future__ import annotations

from typing import Any, Dict, Optional


class InterviewError(Exception):
    """Base error carrying a stable code and the HTTP status it maps to."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(InterviewError):
    code = "NOT_FOUND"
    status_code = 404


class Forbidden(InterviewError):
    code = "FORBIDDEN"
    status_code = 403


class InvalidState(InterviewError):
    code = "INVALID_STATE"
    status_code = 409


class SequenceMismatch(InterviewError):
    code = "SEQUENCE_MISMATCH"
    status_code = 409


class ValidationError(InterviewError):
    code = "VALIDATION_ERROR"
    status_code = 400


class ProviderQuotaExhausted(InterviewError):
    code = "PROVIDER_QUOTA_EXHAUSTED"
    status_code = 503


class ProviderRateLimited(InterviewError):
    code = "PROVIDER_RATE_LIMITED"
    status_code = 429


class ProviderError(InterviewError):
    code = "PROVIDER_ERROR"
    status_code = 400


PARSE_DEGRADED = "PARSE_DEGRADED"


__all__ = [
    "InterviewError",
    "NotFound",
    "Forbidden",
    "InvalidState",
    "SequenceMismatch",
    "ValidationError",
    "ProviderQuotaExhausted",
    "ProviderRateLimited",
    "ProviderError",
    "PARSE_DEGRADED",
]
