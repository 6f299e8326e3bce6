"""Environment-based runtime configuration for SkinToneX.

Only operational knobs live here. Color-science tunables are versioned in
``skintonex.engine.constants`` and never come from the environment.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from SKINTONEX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SKINTONEX_",
        case_sensitive=False,
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout_seconds: float = Field(default=5.0, gt=0)

    # Time budgets
    awb_timeout_ms: float = Field(default=3000.0, gt=0)
    pipeline_timeout_ms: float = Field(default=8000.0, gt=0)

    # Keep analyzing after the quality gate rejects an image
    continue_on_quality_failure: bool = False


def get_settings() -> Settings:
    """Create and return service settings."""
    return Settings()
