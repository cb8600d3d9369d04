from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LLMProvider = Literal["anthropic", "openai", "openrouter", "ollama", "zai"]

DEFAULT_WRITE_PREFIXES: tuple[str, ...] = ("create", "add", "log", "update", "bulk", "delete")


class AgentRuntimeSettings(BaseModel):
    max_steps: int = Field(8, ge=1, description="Iteration budget shared by plan steps and react calls.")
    max_duration_seconds: float = Field(45.0, gt=0.0, description="Wall-clock budget for a single turn.")
    llm_timeout_seconds: float = Field(25.0, gt=0.0, description="Timeout applied to each oracle request attempt.")
    retry_max: int = Field(2, ge=0, description="Retries allowed after the first oracle attempt.")
    retry_base_seconds: float = Field(0.4, ge=0.0)
    retry_max_delay_seconds: float = Field(4.0, ge=0.0)
    retry_jitter_ratio: float = Field(0.2, ge=0.0, le=1.0, description="Upper bound of jitter as a share of the delay.")
    prompt_token_budget: int = Field(10_000, ge=1)
    min_history_messages: int = Field(3, ge=1, description="History messages always kept when trimming to budget.")
    max_events: int = Field(80, ge=1, description="Maximum telemetry events retained per turn.")
    max_react_iterations: int = Field(10, ge=1)
    empty_reply_nudges: int = Field(3, ge=0)
    pending_action_ttl_seconds: float = Field(
        3600.0, gt=0.0, description="Seconds an issued write action stays confirmable."
    )
    max_pending_actions: int = Field(1024, ge=1)
    telemetry_enabled: bool = Field(True)


class ToolSettings(BaseModel):
    cache_ttl_seconds: float = Field(15.0, ge=0.0, description="TTL for cached read-tool results.")
    cache_size: int = Field(256, ge=1)
    write_prefixes: tuple[str, ...] = Field(
        DEFAULT_WRITE_PREFIXES,
        description="Tool name prefixes that mark a tool as mutating and confirmation-gated.",
    )
    circuit_failure_threshold: int = Field(5, ge=1)
    circuit_reset_seconds: float = Field(30.0, ge=0.0)
    max_string_length: int = Field(4096, ge=1)


class LLMSettings(BaseModel):
    provider: LLMProvider = "anthropic"
    api_key: str | None = Field(default=None, description="Provider API key; not required for ollama.")
    model: str = Field("claude-sonnet-4-5", min_length=1)
    base_url: str | None = Field(default=None, description="Optional endpoint override.")
    temperature: float = Field(0.7, ge=0.0, le=1.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0, description="Sent only when set.")
    max_tokens: int = Field(4096, ge=1)
    anthropic_version: str = Field("2023-06-01")
    system_prompt: str | None = Field(default=None, description="Replaces the default agent system prompt.")
    referer: str = Field("http://localhost:8000", description="HTTP-Referer sent to OpenRouter.")
    title: str = Field("Architect", description="X-Title sent to OpenRouter.")

    @property
    def is_configured(self) -> bool:
        return self.provider == "ollama" or bool(self.api_key)


class ObservabilitySettings(BaseModel):
    prometheus_enabled: bool = Field(True)
    json_logs: bool = Field(True)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class Settings(BaseSettings):
    environment: Literal["local", "test", "production"] = Field("local")
    app_name: str = Field("Architect Agent")
    api_v1_prefix: str = Field("/api/v1")
    frontend_origins: list[str] = Field(default_factory=list, description="Origins allowed by CORS; empty disables it.")

    runtime: AgentRuntimeSettings = Field(default_factory=AgentRuntimeSettings)  # type: ignore[arg-type]
    tools: ToolSettings = Field(default_factory=ToolSettings)  # type: ignore[arg-type]
    llm: LLMSettings = Field(default_factory=LLMSettings)  # type: ignore[arg-type]
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)  # type: ignore[arg-type]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )


@lru_cache(maxsize=1)
def _get_cached_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def get_settings(overrides: Mapping[str, Any] | None = None) -> Settings:
    """Return settings, using cached defaults unless overrides are provided."""
    if overrides:
        return Settings(**dict(overrides))
    return _get_cached_settings()


__all__ = [
    "AgentRuntimeSettings",
    "DEFAULT_WRITE_PREFIXES",
    "LLMProvider",
    "LLMSettings",
    "ObservabilitySettings",
    "Settings",
    "ToolSettings",
    "get_settings",
]
