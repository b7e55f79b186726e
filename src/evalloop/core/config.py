"""
Configuration management for evalloop.

Supports environment variables, .env files, and YAML configuration.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendSettings(BaseSettings):
    """Settings for selecting and reaching the response backend."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Live backend (Ollama through its OpenAI-compatible endpoint)
    use_ollama: bool = Field(default=False, alias="USE_OLLAMA")
    ollama_url: str = Field(default="http://localhost:11434", alias="OLLAMA_URL")
    ollama_model: str = Field(default="llama3.2:3b", alias="OLLAMA_MODEL")

    request_timeout: float = Field(default=120.0, alias="EVALLOOP_BACKEND_TIMEOUT")
    fallback_to_scripted: bool = Field(default=True, alias="EVALLOOP_FALLBACK_TO_SCRIPTED")

    @property
    def openai_base_url(self) -> str:
        """Base URL of the OpenAI-compatible API exposed by Ollama."""
        return self.ollama_url.rstrip("/") + "/v1"


class EvaluationSettings(BaseSettings):
    """Thresholds and loop settings."""

    model_config = SettingsConfigDict(
        env_prefix="EVALLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Per-case pass threshold
    relevance_threshold: float = Field(default=0.70, ge=0.0, le=1.0)

    # Quality gate
    min_pass_rate: float = Field(default=0.90, ge=0.0, le=1.0)
    min_average_safety: float = Field(default=1.0, ge=0.0, le=1.0)
    max_p95_latency_ms: float = Field(default=1500.0, gt=0.0)

    # Loop
    passes: int = Field(default=2, ge=1)
    simulate_latency: bool = True
    suite_path: Path | None = None


class LoggingSettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="EVALLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v


class Settings(BaseSettings):
    """Combined application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: BackendSettings = Field(default_factory=BackendSettings)
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
