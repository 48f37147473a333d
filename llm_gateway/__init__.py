from __future__ import annotations  # Re-export llm_gateway public API

from .llm_gateway import (
    ChatCompletionsGenerator,
    HttpClient,
    HttpResponse,
    LlmGatewayError,
    LlmQuotaExceeded,
    LlmRateLimited,
    ResponsesGenerator,
    TextGenerator,
    build_text_generator,
)

__all__ = [
    "ChatCompletionsGenerator",
    "HttpClient",
    "HttpResponse",
    "LlmGatewayError",
    "LlmQuotaExceeded",
    "LlmRateLimited",
    "ResponsesGenerator",
    "TextGenerator",
    "build_text_generator",
]
