"""Environment configuration and validation.

This module defines strongly-typed application settings loaded from environment variables
(optionally via a local `.env` file).

It enforces the invariants the router depends on, such as requiring an API key whenever the
model-assisted stages are enabled and keeping resilience/caching knobs within sane bounds.
"""

from __future__ import annotations

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The settings are validated at startup so that routing behavior stays deterministic: the model
    is consulted only when explicitly enabled and fully configured.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    llm_enabled: bool = Field(default=False, alias="LLM_ENABLED")
    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY")
    llm_model: str = Field(default="gpt-4o-mini", alias="LLM_MODEL")
    llm_api_base: str = Field(default="https://api.openai.com/v1", alias="LLM_API_BASE")
    llm_timeout_s: float = Field(default=30.0, gt=0, alias="LLM_TIMEOUT_S")

    retrieval_namespaces: str = Field(default="combined", alias="RETRIEVAL_NAMESPACES")

    breaker_failure_threshold: int = Field(default=5, ge=1, alias="BREAKER_FAILURE_THRESHOLD")
    breaker_window_s: float = Field(default=60.0, gt=0, alias="BREAKER_WINDOW_S")
    breaker_cooldown_s: float = Field(default=60.0, gt=0, alias="BREAKER_COOLDOWN_S")

    quick_context_ttl_s: float = Field(default=300.0, gt=0, alias="QUICK_CONTEXT_TTL_S")
    query_row_limit: int = Field(default=1000, ge=1, alias="QUERY_ROW_LIMIT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("retrieval_namespaces")
    @classmethod
    def validate_namespaces(cls, value: str) -> str:
        """Validate that at least one retrieval namespace is configured."""

        names = [part.strip() for part in value.split(",") if part.strip()]
        if not names:
            raise ValueError("RETRIEVAL_NAMESPACES must list at least one namespace")
        return ",".join(names)

    @model_validator(mode="after")
    def validate_llm_config(self) -> Settings:
        """Validate the optional model configuration.

        If model-assisted routing is enabled, an API key must be provided.
        """

        if self.llm_enabled and not self.llm_api_key:
            raise ValueError("LLM_API_KEY is required when LLM_ENABLED=true")
        return self

    @property
    def namespaces(self) -> list[str]:
        return self.retrieval_namespaces.split(",")


def load_settings() -> Settings:
    """Load and validate settings from environment variables.

    Raises:
        RuntimeError: If the environment configuration is missing or invalid.
    """

    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"Invalid environment configuration: {exc}") from exc
