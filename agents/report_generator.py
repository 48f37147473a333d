"""LLM-backed evaluation report text generator."""
from __future__ import annotations

from typing import Protocol

from llm_gateway import LlmGatewayError, TextGenerator

REPORT_SYSTEM_PROMPT = "You are a strict JSON generator. Output JSON only. No markdown."


class ReportGenerator(Protocol):
    model: str

    def generate_report(self, prompt: str) -> str: ...


class LlmReportGenerator:
    """Return the raw model reply for an evaluation prompt; parsing happens downstream."""

    def __init__(self, llm: TextGenerator, *, max_tokens: int = 1500, temperature: float = 0.2) -> None:
        self._llm = llm
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def model(self) -> str:
        return self._llm.route.model

    def generate_report(self, prompt: str) -> str:
        text = self._llm.generate(
            REPORT_SYSTEM_PROMPT,
            prompt,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        if not text:
            raise LlmGatewayError("AI report response was empty")
        return text


__all__ = ["ReportGenerator", "LlmReportGenerator", "REPORT_SYSTEM_PROMPT"]
