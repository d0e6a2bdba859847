"""
Engine configuration using Pydantic Settings.
Loads from RISK_ENGINE_* environment variables or a .env file.

Weights and thresholds of the scoring rules are fixed in code; only the
operational knobs below are tunable.
"""
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RISK_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Device history
    max_device_history: int = Field(default=10, ge=1)
    trust_threshold: float = Field(default=0.7, ge=0, le=1)
    history_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    history_ttl_seconds: Optional[int] = Field(default=None, ge=1)

    # Score jitter is a presentation concern and stays off in production
    jitter_enabled: bool = False
    jitter_amplitude: float = Field(default=0.05, ge=0, le=0.5)
    jitter_seed: Optional[int] = None

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return EngineSettings()
