"""Shared configuration management using pydantic-settings."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

from src.shared.constants import (
    ANTHROPIC_API_URL,
    QUEUE_CONCURRENCY,
    QUEUE_MAX_RETRIES,
    STUCK_THRESHOLD_MINUTES,
    SWEEP_INTERVAL_SECONDS,
)


class SharedConfig(BaseSettings):
    """Base configuration shared across all services."""
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")
    database_path: str = Field(
        default="./data/pipeline.db", validation_alias="DATABASE_PATH"
    )

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


class PipelineSettings(SharedConfig):
    """Configuration for the API service and the pipeline worker."""
    artifacts_path: str = Field(
        default="./data/artifacts", validation_alias="ARTIFACTS_PATH"
    )
    anthropic_base_url: str = Field(
        default=ANTHROPIC_API_URL, validation_alias="ANTHROPIC_BASE_URL"
    )
    anthropic_timeout_seconds: float = Field(
        default=600.0, validation_alias="ANTHROPIC_TIMEOUT_SECONDS"
    )
    queue_concurrency: int = Field(
        default=QUEUE_CONCURRENCY, ge=1, validation_alias="QUEUE_CONCURRENCY"
    )
    queue_max_retries: int = Field(
        default=QUEUE_MAX_RETRIES, ge=0, validation_alias="QUEUE_MAX_RETRIES"
    )
    stuck_threshold_minutes: int = Field(
        default=STUCK_THRESHOLD_MINUTES, ge=1, validation_alias="STUCK_THRESHOLD_MINUTES"
    )
    sweep_interval_seconds: int = Field(
        default=SWEEP_INTERVAL_SECONDS, ge=1, validation_alias="SWEEP_INTERVAL_SECONDS"
    )
    agent_config_path: str | None = Field(
        default=None, validation_alias="AGENT_CONFIG_PATH"
    )
