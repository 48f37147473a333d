"""Application settings and configuration management."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    APP_ENV: Literal["development", "production", "test"] = "development"
    DB_PATH: str = Field(default="data/interviews.db")

    MAX_TURNS: int = Field(default=10, ge=1)
    MAX_CONSECUTIVE_FOLLOWUP: int = Field(default=2, ge=0)
    TOTAL_LIMIT_SEC: int = Field(default=10 * 60, ge=1)
    TURN_LIMIT_SEC: int = Field(default=60, ge=1)

    AI_PROVIDER: Literal["auto", "openai", "upstage"] = "auto"
    AI_MODEL: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    UPSTAGE_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    AI_TIMEOUT_S: float = Field(default=60.0, ge=0.1)
    AI_MAX_RETRIES: int = Field(default=1, ge=0)

    REPORT_PROMPT_VERSION: str = "v1"
    REPORT_WORKER_THREADS: int = Field(default=2, ge=1)
    ENABLE_REPORT_WORKER: bool = False
    REPORT_WORKER_INTERVAL_MS: int = Field(default=5000, ge=100)

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True, extra="ignore")

    @property
    def include_anonymous_sessions(self) -> bool:
        """Outside production, anonymous sessions show up in every caller's history."""
        return self.APP_ENV != "production"


settings = Settings()
