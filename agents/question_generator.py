"""LLM-backed interview question generator."""
from __future__ import annotations

import logging
import re
import time
from textwrap import dedent
from typing import Protocol

from agents.types import GeneratedQuestion, QuestionRequest
from llm_gateway import LlmGatewayError, TextGenerator

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = dedent(
    """
    You are an experienced technical interviewer generating questions that assess a candidate's skills.

    Principles:
    1. Probe real understanding rather than memorised facts.
    2. Prefer questions that connect to practical experience.
    3. Raise the difficulty gradually.
    4. Be clear and specific.
    5. Never repeat an earlier question.

    Output format:
    - Produce exactly one question. Do not list several.
    - Output only the question, without explanations or numbering.
    - Keep it to a single concise sentence.
    """
).strip()

_NUMBERING = re.compile(r"^\d+\.\s*")


class QuestionGenerator(Protocol):
    def generate_question(self, request: QuestionRequest) -> GeneratedQuestion: ...


class LlmQuestionGenerator:
    """Question generator that prompts the configured text generator."""

    def __init__(self, llm: TextGenerator, *, max_tokens: int = 500, temperature: float = 0.7) -> None:
        self._llm = llm
        self._max_tokens = max_tokens
        self._temperature = temperature

    def generate_question(self, request: QuestionRequest) -> GeneratedQuestion:
        logger.info(
            "Question request topic=%s subtopics=%s turn=%d type=%s",
            request.main_topic_id,
            ",".join(request.sub_topic_ids),
            request.turn_index,
            "followup" if request.is_followup else "base",
        )
        raw = self._llm.generate(
            SYSTEM_PROMPT,
            build_question_prompt(request),
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        if not raw.strip():
            raise LlmGatewayError("AI question response was empty")
        question_id = f"q_{int(time.time() * 1000)}_{request.turn_index}"
        return GeneratedQuestion(question_id=question_id, text=first_question(raw))


def build_question_prompt(request: QuestionRequest) -> str:
    """Compose the user prompt for the next question."""

    lines = [f"Interview topic: {request.main_topic_id}"]
    if request.sub_topic_ids:
        lines.append(f"Sub-topics: {', '.join(request.sub_topic_ids)}")
    lines.append(f"Current turn: {request.turn_index}")

    if request.is_followup and request.answer_text:
        lines += [
            "",
            "Candidate's answer to the previous question:",
            request.answer_text,
            "",
            "Based on this answer, generate exactly one follow-up question.",
            "- Dig deeper into what the answer covered.",
            "- Ask about details or closely related advanced material the answer mentioned.",
            "- It is fine to target gaps or weak spots in the answer.",
        ]
    else:
        if request.previous_questions:
            lines += ["", "Previous questions:"]
            lines += [f"{i}. {text}" for i, text in enumerate(request.previous_questions, start=1)]
            lines.append("Generate a new question that does not overlap with the ones above.")
        if request.turn_index == 1:
            lines.append("This is the first question, so start from the fundamentals.")
        elif request.turn_index <= 3:
            lines.append("This is an early question, so aim for medium difficulty.")
        else:
            lines.append("Ask an advanced question that tests depth of understanding.")
    lines.append("Important: generate exactly one question. Do not list several.")
    return "\n".join(lines)


def first_question(raw: str) -> str:
    """Keep only the first question when the model returned several."""

    text = raw.strip()
    if "\n\n" in text:
        return text.split("\n\n")[0].strip()
    if len(text.split("\n")) > 2:
        lines = [line for line in text.split("\n") if line.strip()]
        chosen = next((line for line in lines if "?" in line or _NUMBERING.match(line)), lines[0])
        chosen = _NUMBERING.sub("", chosen).strip()
        end = chosen.find("?")
        return chosen[: end + 1].strip() if end != -1 else chosen
    end = text.find("?")
    if end != -1 and "?" in text[end + 1 :]:
        return text[: end + 1].strip()
    return text


__all__ = ["QuestionGenerator", "LlmQuestionGenerator", "build_question_prompt", "first_question", "SYSTEM_PROMPT"]
