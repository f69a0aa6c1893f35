from __future__ import annotations

import os

from pydantic import BaseModel, Field

from .openrouter_session import OPENROUTER_API_BASE


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class OpenRouterClientConfig(BaseModel):
    # Provider
    api_key: str | None = Field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY"))
    base_url: str = Field(default_factory=lambda: os.getenv("OPENROUTER_BASE_URL", OPENROUTER_API_BASE))
    http_referer: str | None = Field(default_factory=lambda: os.getenv("OPENROUTER_HTTP_REFERER"))
    app_title: str | None = Field(default_factory=lambda: os.getenv("OPENROUTER_APP_TITLE"))
    enable_vision: bool = Field(default_factory=lambda: _env_flag("ENABLE_VISION"))

    # Completion pipeline
    max_retries: int = Field(default_factory=lambda: int(os.getenv("COMPLETION_MAX_RETRIES", "3")), ge=0)
    enable_caching: bool = Field(default_factory=lambda: _env_flag("ENABLE_LLM_CACHE"))
    # Empty means an in-process cache.
    cache_dir: str | None = Field(default_factory=lambda: os.getenv("LLM_CACHE_DIR") or None)

    # Observability
    enable_metrics: bool = Field(default_factory=lambda: _env_flag("ENABLE_METRICS"))
    metrics_bind: str = Field(default_factory=lambda: os.getenv("METRICS_BIND", "127.0.0.1"))
    metrics_port: int = Field(default_factory=lambda: int(os.getenv("METRICS_PORT", "9109")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = Field(default_factory=lambda: os.getenv("LOG_FORMAT", "json"))

    # HTTP behavior
    upstream_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "60"))
    )
    upstream_max_attempts: int = Field(default_factory=lambda: int(os.getenv("UPSTREAM_MAX_ATTEMPTS", "3")))
    upstream_backoff_initial_seconds: float = Field(
        default_factory=lambda: float(os.getenv("UPSTREAM_BACKOFF_INITIAL_SECONDS", "0.5"))
    )
    upstream_backoff_max_seconds: float = Field(
        default_factory=lambda: float(os.getenv("UPSTREAM_BACKOFF_MAX_SECONDS", "8.0"))
    )
    upstream_circuit_breaker_failures: int = Field(
        default_factory=lambda: int(os.getenv("UPSTREAM_CIRCUIT_BREAKER_FAILURES", "5"))
    )
    upstream_circuit_breaker_reset_seconds: float = Field(
        default_factory=lambda: float(os.getenv("UPSTREAM_CIRCUIT_BREAKER_RESET_SECONDS", "30"))
    )

    def secrets(self) -> list[str]:
        return [s for s in (self.api_key,) if s]
