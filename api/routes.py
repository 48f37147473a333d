"""FastAPI routes for interview sessions and their reports."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from api.errors import request_id_of
from api.schemas import success_payload
from interview.models import StartInterview, TurnSubmission
from interview.orchestrator import InterviewOrchestrator
from session_reports.projections import QueryProjections


class ApiServices:  # Collaborators shared by every route
    def __init__(self, orchestrator: InterviewOrchestrator, projections: QueryProjections) -> None:
        self.orchestrator = orchestrator
        self.projections = projections


def get_services(request: Request) -> ApiServices:
    return request.app.state.services


def caller_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    value = (x_user_id or "").strip()
    return value or None


interviews = APIRouter(prefix="/api/interviews", tags=["interviews"])
records = APIRouter(prefix="/api/interview", tags=["interview-records"])
reports = APIRouter(prefix="/api/reports", tags=["reports"])


@interviews.post("", status_code=201)
def start_interview(
    payload: StartInterview,
    request: Request,
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    result = services.orchestrator.start(payload, caller)
    return success_payload(result, request_id_of(request))


@interviews.post("/{interview_id}/turns", status_code=201)
def submit_turn(
    interview_id: str,
    payload: TurnSubmission,
    request: Request,
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    result = services.orchestrator.submit_turn(interview_id, payload, caller)
    return success_payload(result, request_id_of(request))


@interviews.get("/reports")
def list_reports(
    request: Request,
    page: int = Query(default=1, ge=1),
    size: int = Query(default=10, ge=1, le=100),
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    return success_payload(services.projections.list_reports(caller, page, size), request_id_of(request))


@interviews.get("/{interview_id}/report")
def get_report(
    interview_id: str,
    request: Request,
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    return success_payload(services.projections.get_report(interview_id, caller), request_id_of(request))


@interviews.post("/{interview_id}/report/regenerate", status_code=201)
def regenerate_report(
    interview_id: str,
    request: Request,
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    result = services.orchestrator.regenerate_report(interview_id, caller)
    return success_payload(result, request_id_of(request))


@records.get("/records")
def interview_records(
    request: Request,
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    return success_payload(services.projections.records(caller), request_id_of(request))


@records.get("/score-trend")
def score_trend(
    request: Request,
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    return success_payload(services.projections.score_trend(caller), request_id_of(request))


@reports.get("/{report_id}/summary")
def report_summary(
    report_id: int,
    request: Request,
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    return success_payload(services.projections.report_summary(report_id, caller), request_id_of(request))


@reports.get("/{report_id}/turn-metrics")
def report_turn_metrics(
    report_id: int,
    request: Request,
    caller: Optional[str] = Depends(caller_id),
    services: ApiServices = Depends(get_services),
) -> Dict[str, Any]:
    return success_payload(services.projections.turn_metrics(report_id, caller), request_id_of(request))


__all__ = ["ApiServices", "caller_id", "get_services", "interviews", "records", "reports"]
