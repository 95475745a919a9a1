"""Configuration management for agentrelay."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentrelay.errors import ConfigurationError

BackendName = Literal["qwen", "claude", "codex"]
ClassifierMode = Literal["fence", "marker"]
DeliveryMode = Literal["batch", "stream"]


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTRELAY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Repository
    target_repo_url: str | None = Field(None, description="Repository cloned for each task")
    base_branch: str = Field(default="main", description="Base branch for pull requests")

    # AI backend
    backend: BackendName = Field(default="qwen", description="AI backend variant")
    backend_binary: str | None = Field(None, description="Override the backend executable")
    model: str | None = Field(None, description="Optional model passed to the backend")

    # Output classification and delivery
    classifier: ClassifierMode = Field(default="fence", description="Narration/command classifier")
    narration_marker: str = Field(default=">> ", description="Narration prefix for the marker classifier")
    delivery: DeliveryMode = Field(default="batch", description="Narration delivery strategy")
    batch_interval_seconds: float = Field(default=2.0, gt=0)
    max_batch_size: int = Field(default=10, ge=1)
    summarize_batches: bool = Field(default=False, description="Summarize batches with the AI backend")
    stream_buffer_seconds: float = Field(default=1.5, gt=0)
    stream_prefix: str = Field(default="➡️ ")

    # Supervision
    silence_threshold_seconds: float = Field(default=300.0, gt=0)
    watchdog_interval_seconds: float = Field(default=60.0, gt=0)
    hard_deadline_seconds: float = Field(default=3600.0, gt=0)
    command_timeout_seconds: float | None = Field(default=600.0, description="Nested command timeout")

    # Telegram front-end
    telegram_token: str | None = Field(None, description="Telegram bot token")
    telegram_allow_from: str = Field(default="", description="Comma separated user ids or usernames")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def allowed_senders(self) -> set[str]:
        return {item.strip() for item in self.telegram_allow_from.split(",") if item.strip()}

    def require_repo_url(self) -> str:
        if not self.target_repo_url:
            raise ConfigurationError("AGENTRELAY_TARGET_REPO_URL is not set.")
        return self.target_repo_url


def get_settings(env_file: Path | None = None, **overrides: object) -> Settings:
    """Load settings from the environment and an optional `.env` file.

    Args:
        env_file: Optional dotenv path override
        **overrides: Explicit values that win over the environment

    Returns:
        Settings instance
    """
    try:
        if env_file is not None:
            return Settings(_env_file=env_file, **overrides)  # type: ignore[call-arg]
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
