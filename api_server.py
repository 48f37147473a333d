from __future__ import annotations  # FastAPI server exposing interview sessions and reports

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from agents.question_generator import LlmQuestionGenerator, QuestionGenerator
from agents.report_generator import LlmReportGenerator, ReportGenerator
from api.errors import install_error_handlers
from api.routes import ApiServices, interviews, records, reports
from config.settings import Settings, settings as default_settings
from interview.locks import SessionLocks
from interview.orchestrator import InterviewOrchestrator
from llm_gateway import build_text_generator
from observability import bind_request_id, reset_request_id
from session_reports import QueryProjections, ReportDispatcher, ReportPipeline
from storage.base import SessionStore
from storage.sqlite_store import SqliteSessionStore


logger = logging.getLogger(__name__)


def create_app(
    cfg: Optional[Settings] = None,
    *,
    store: Optional[SessionStore] = None,
    question_generator: Optional[QuestionGenerator] = None,
    report_generator: Optional[ReportGenerator] = None,
    dispatcher: Optional[ReportDispatcher] = None,
) -> FastAPI:  # Wire collaborators and build the application
    cfg = cfg or default_settings
    store = store or SqliteSessionStore(cfg.DB_PATH)
    if question_generator is None or report_generator is None:
        llm = build_text_generator(cfg)
        question_generator = question_generator or LlmQuestionGenerator(llm)
        report_generator = report_generator or LlmReportGenerator(llm)

    locks = SessionLocks()
    pipeline = ReportPipeline(store, report_generator, locks=locks, prompt_version=cfg.REPORT_PROMPT_VERSION)
    if dispatcher is None:
        dispatcher = ReportDispatcher(
            pipeline.generate,
            store=store,
            max_workers=cfg.REPORT_WORKER_THREADS,
            sweep_interval_s=cfg.REPORT_WORKER_INTERVAL_MS / 1000 if cfg.ENABLE_REPORT_WORKER else None,
        )
    orchestrator = InterviewOrchestrator(store, question_generator, dispatcher, cfg, locks=locks)
    projections = QueryProjections(store, include_anonymous=cfg.include_anonymous_sessions, max_turns=cfg.MAX_TURNS)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        dispatcher.start()
        try:
            yield
        finally:
            dispatcher.shutdown()

    app = FastAPI(title="Mock Interview API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):  # Propagate or mint a request id
        request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:16]}"
        request.state.request_id = request_id
        token = bind_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers["X-Request-ID"] = request_id
        return response

    install_error_handlers(app)
    app.include_router(interviews)
    app.include_router(records)
    app.include_router(reports)
    app.state.services = ApiServices(orchestrator, projections)
    app.state.dispatcher = dispatcher
    app.state.pipeline = pipeline
    return app


app = create_app()
