"""LLM route configuration derived from settings."""
from __future__ import annotations

from typing import Dict, Literal

from pydantic import BaseModel, Field

from .settings import Settings

Provider = Literal["openai", "upstage"]

UPSTAGE_BASE_URL = "https://api.upstage.ai/v1/solar"
OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODELS: Dict[str, str] = {"openai": "gpt-5-nano", "upstage": "solar-pro"}


class LlmRoute(BaseModel):
    """LLM endpoint configuration."""

    name: Provider
    base_url: str
    model: str
    api_key: str | None = None
    timeout_s: float = Field(default=60.0, ge=0.1)
    max_retries: int = Field(default=1, ge=0)
    extra_headers: Dict[str, str] = Field(default_factory=dict)


def resolve_provider(cfg: Settings) -> Provider:
    """Pick the configured provider, falling back to whichever key is present."""

    if cfg.AI_PROVIDER in ("openai", "upstage"):
        return cfg.AI_PROVIDER
    if cfg.OPENAI_API_KEY:
        return "openai"
    return "upstage"


def route_from_settings(cfg: Settings) -> LlmRoute:
    """Build the LLM route for the active provider."""

    provider = resolve_provider(cfg)
    if provider == "openai":
        api_key = cfg.OPENAI_API_KEY
        base_url = cfg.OPENAI_BASE_URL or OPENAI_BASE_URL
    else:
        api_key = cfg.UPSTAGE_API_KEY
        base_url = cfg.OPENAI_BASE_URL or UPSTAGE_BASE_URL
    return LlmRoute(
        name=provider,
        base_url=base_url.rstrip("/"),
        model=cfg.AI_MODEL or DEFAULT_MODELS[provider],
        api_key=api_key,
        timeout_s=cfg.AI_TIMEOUT_S,
        max_retries=cfg.AI_MAX_RETRIES,
    )
