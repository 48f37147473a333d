"""Response envelopes for the interview API."""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from interview.models import CamelModel


def _timestamp() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class ResponseMeta(CamelModel):
    request_id: str
    timestamp: str = Field(default_factory=_timestamp)


class ApiResp(BaseModel):
    success: bool = True
    data: Any = None
    meta: ResponseMeta


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ApiError(BaseModel):
    success: bool = False
    error: ErrorBody
    meta: ResponseMeta


def success_payload(data: Any, request_id: str) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    elif isinstance(data, list):
        data = [item.model_dump(mode="json", by_alias=True) if isinstance(item, BaseModel) else item for item in data]
    return ApiResp(data=data, meta=ResponseMeta(request_id=request_id)).model_dump(mode="json", by_alias=True)


def error_payload(code: str, message: str, request_id: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body = ApiError(
        error=ErrorBody(code=code, message=message, details=details),
        meta=ResponseMeta(request_id=request_id),
    )
    return body.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = ["ApiResp", "ApiError", "ErrorBody", "ResponseMeta", "error_payload", "success_payload"]
