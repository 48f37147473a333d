from __future__ import annotations  # LLM request gateway module

import logging
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import httpx

from config import LlmRoute, Settings, route_from_settings


logger = logging.getLogger(__name__)  # Module logger setup


class HttpClient(Protocol):  # Minimal HTTP client protocol
    def post(self, url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> "HttpResponse": ...


class HttpResponse(Protocol):  # Minimal HTTP response protocol
    @property
    def status_code(self) -> int: ...

    def json(self) -> Any: ...

    @property
    def text(self) -> str: ...


class LlmGatewayError(RuntimeError):  # Base gateway error
    def __init__(self, message: str, *, status_code: Optional[int] = None, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class LlmRateLimited(LlmGatewayError):  # Provider asked us to slow down
    pass


class LlmQuotaExceeded(LlmRateLimited):  # Provider account has no quota left
    pass


class TextGenerator(Protocol):  # Single entry point shared by both provider adapters
    route: LlmRoute

    def generate(self, system_prompt: str, user_prompt: str, *, max_tokens: int, temperature: Optional[float] = None) -> str: ...


class ChatCompletionsGenerator:  # OpenAI-compatible /chat/completions adapter (Upstage Solar, OpenAI)
    def __init__(self, route: LlmRoute, client: Optional[HttpClient] = None) -> None:
        self.route = route
        self._client = client

    def generate(self, system_prompt: str, user_prompt: str, *, max_tokens: int, temperature: Optional[float] = None) -> str:
        payload: Dict[str, Any] = {
            "model": self.route.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if self.route.name == "openai":
            payload["max_completion_tokens"] = max_tokens
        else:
            payload["max_tokens"] = max_tokens
            if temperature is not None:
                payload["temperature"] = temperature
        data = _send(self.route, "/chat/completions", payload, self._client, preview=user_prompt)
        return _extract_chat_content(data)


class ResponsesGenerator:  # OpenAI /responses adapter with a single chat-completions fallback
    def __init__(self, route: LlmRoute, client: Optional[HttpClient] = None) -> None:
        self.route = route
        self._client = client
        self._fallback = ChatCompletionsGenerator(route, client)

    def generate(self, system_prompt: str, user_prompt: str, *, max_tokens: int, temperature: Optional[float] = None) -> str:
        payload: Dict[str, Any] = {
            "model": self.route.model,
            "instructions": system_prompt,
            "input": user_prompt,
            "max_output_tokens": max_tokens,
        }
        data = _send(self.route, "/responses", payload, self._client, preview=user_prompt)
        text = _extract_response_text(data)
        if text:
            return text
        logger.warning(
            "Responses API returned empty text, falling back to chat completions model=%s",
            self.route.model,
        )
        return self._fallback.generate(system_prompt, user_prompt, max_tokens=max_tokens, temperature=temperature)


def build_text_generator(cfg: Settings, client: Optional[HttpClient] = None) -> TextGenerator:  # Select adapter once at startup
    route = route_from_settings(cfg)
    if route.name == "openai":
        return ResponsesGenerator(route, client)
    return ChatCompletionsGenerator(route, client)


def _send(
    route: LlmRoute,
    endpoint: str,
    payload: Dict[str, Any],
    client: Optional[HttpClient],
    *,
    preview: str,
) -> Any:  # Post payload with retries on transport and 5xx failures
    if not route.api_key:
        raise LlmGatewayError(f"API key for provider '{route.name}' is not set")
    headers = {"Content-Type": "application/json", "Authorization": f"Bearer {route.api_key}"}
    headers.update(route.extra_headers)
    url = f"{route.base_url}{endpoint}"
    attempts = route.max_retries + 1
    short = _preview(preview)
    last_error: Optional[Exception] = None
    for attempt in range(attempts):
        logger.info(
            "LLM request send route=%s model=%s attempt=%d/%d preview=%s",
            route.name,
            route.model,
            attempt + 1,
            attempts,
            short,
        )
        try:
            response, close_cb = _post(url, payload, headers, route.timeout_s, client)
        except Exception as exc:  # noqa: BLE001
            logger.error("LLM transport failure: %s", exc)
            last_error = LlmGatewayError("LLM transport failed")
            last_error.__cause__ = exc
            continue
        try:
            if response.status_code == 429:
                raise _rate_limit_error(response)
            if response.status_code >= 500:
                logger.error("LLM error status: %s", response.status_code)
                last_error = LlmGatewayError(
                    f"LLM returned status {response.status_code}", status_code=response.status_code
                )
                continue
            if response.status_code >= 400:
                logger.error("LLM error status: %s", response.status_code)
                raise LlmGatewayError(
                    f"LLM returned status {response.status_code}", status_code=response.status_code
                )
            try:
                data = response.json()
            except Exception as exc:  # noqa: BLE001
                logger.error("Invalid JSON payload from LLM: %s", exc)
                raise LlmGatewayError("LLM payload was not JSON") from exc
        finally:
            _close_safely(close_cb)
        logger.info("LLM request done route=%s model=%s attempt=%d", route.name, route.model, attempt + 1)
        return data
    assert last_error is not None
    raise last_error


def _post(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float, client: Optional[HttpClient]) -> Tuple[HttpResponse, Optional[Callable[[], None]]]:  # Dispatch HTTP request
    if client is not None:
        return client.post(url, json=payload, headers=headers, timeout=timeout), None
    http_client = httpx.Client(timeout=timeout)
    try:
        response = http_client.post(url, json=payload, headers=headers)
    except Exception:
        http_client.close()
        raise
    return response, http_client.close


def _close_safely(close_cb: Optional[Callable[[], None]]) -> None:  # Close HTTP client callback when provided
    if close_cb is not None:
        close_cb()


def _rate_limit_error(response: HttpResponse) -> LlmRateLimited:  # Distinguish exhausted quota from throttling
    code: Optional[str] = None
    try:
        body = response.json()
    except Exception:  # noqa: BLE001
        body = None
    if isinstance(body, dict):
        error = body.get("error") if isinstance(body.get("error"), dict) else {}
        for candidate in (body.get("code"), body.get("type"), error.get("code"), error.get("type")):
            if candidate == "insufficient_quota":
                code = "insufficient_quota"
                break
    if code == "insufficient_quota":
        logger.error("LLM quota exhausted")
        return LlmQuotaExceeded("LLM quota exhausted", status_code=429, code=code)
    logger.warning("LLM rate limited")
    return LlmRateLimited("LLM rate limited", status_code=429)


def _preview(text: str) -> str:  # Build preview string for logging
    for line in text.strip().splitlines():
        if line.strip():
            line = line.strip()
            return line if len(line) <= 120 else line[:117] + "..."
    return ""


def _extract_chat_content(data: Any) -> str:  # Extract message content from a chat-completions response
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            message = choices[0].get("message") if isinstance(choices[0], dict) else None
            content = message.get("content") if isinstance(message, dict) else None
            if isinstance(content, str):
                return content.strip()
        if isinstance(data.get("content"), str):
            return data["content"].strip()
    return ""


def _extract_response_text(data: Any) -> str:  # Extract text from a responses-API payload
    if not isinstance(data, dict):
        return ""
    output_text = data.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()
    segments: list[str] = []
    output = data.get("output")
    for item in output if isinstance(output, list) else []:
        content = item.get("content") if isinstance(item, dict) else None
        for part in content if isinstance(content, list) else []:
            if not isinstance(part, dict) or part.get("type") not in ("output_text", "text"):
                continue
            text = part.get("text")
            if isinstance(text, dict):
                text = text.get("value")
            if isinstance(text, str) and text.strip():
                segments.append(text)
    return "\n".join(segments).strip()

