"""Shared type definitions for agents."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

QuestionType = Literal["base", "followup"]


class QuestionRequest(BaseModel):
    main_topic_id: str
    sub_topic_ids: List[str] = Field(default_factory=list)
    turn_index: int = Field(ge=1)
    previous_questions: List[str] = Field(default_factory=list)
    is_followup: bool = False
    answer_text: Optional[str] = None


class GeneratedQuestion(BaseModel):
    question_id: str
    text: str
