"""Request and result shapes exchanged with the orchestrator."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storage.models import QuestionType, SessionStatus

ApiStatus = Literal["IN_PROGRESS", "ANALYZING", "DONE", "FAILED"]


def api_status(status: SessionStatus) -> ApiStatus:
    return status.upper()  # type: ignore[return-value]


class CamelModel(BaseModel):
    """Payload model serialised with camelCase keys and accepting either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TopicRef(CamelModel):
    id: str
    label: str


class Topics(CamelModel):
    main: TopicRef
    subs: List[TopicRef] = Field(default_factory=list)


class FirstQuestion(CamelModel):
    question_id: str
    text: str


class NextQuestion(CamelModel):
    question_id: str
    text: str
    type: QuestionType


class StartInterview(CamelModel):
    main_topic_id: str = ""
    sub_topic_ids: List[str] = Field(default_factory=list)
    title: Optional[str] = None


class TurnSubmission(CamelModel):
    answer_text: str
    turn_index: int = Field(ge=1)
    answer_duration: float = Field(ge=0)
    face_metrics: Optional[Dict[str, Any]] = None
    voice_metrics: Optional[Dict[str, Any]] = None
    is_followup_question: bool = False


class StartResult(CamelModel):
    interview_id: str
    topics: Topics
    status: ApiStatus
    turn_index: int
    first_question: FirstQuestion


class SubmitResult(CamelModel):
    interview_id: str
    next_turn_index: Optional[int]
    status: ApiStatus
    next_question: Optional[NextQuestion]
    message: str
    consecutive_followup_count: int
    remaining_followup_count: int


class RegenerateResult(CamelModel):
    interview_id: str
    status: ApiStatus
    message: str


__all__ = [
    "ApiStatus",
    "CamelModel",
    "FirstQuestion",
    "NextQuestion",
    "RegenerateResult",
    "StartInterview",
    "StartResult",
    "SubmitResult",
    "TopicRef",
    "Topics",
    "TurnSubmission",
    "api_status",
]
