"""Shared configuration management for the invoice intake service.

Based on Pydantic Settings v2:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'INTAKE_'.
    Example: INTAKE_GEMINI_MODEL=gemini-2.5-flash
    """

    model_config = SettingsConfigDict(
        env_prefix="INTAKE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-intake",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Remote extraction provider
    extraction_provider: Literal["gemini", "openai", "ollama"] = Field(
        default="gemini",
        description="Remote completion backend: gemini (default), openai, ollama (self-hosted)",
    )

    # Gemini configuration (for extraction_provider="gemini")
    gemini_api_key: str = Field(
        default="",
        description="Gemini API key (use env var INTAKE_GEMINI_API_KEY)",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Gemini generateContent base URL",
    )
    gemini_model: str = Field(
        default="gemini-3-flash-preview",
        description="Default Gemini model, tried right after the caller's preferred model",
    )
    gemini_fallback_models: list[str] = Field(
        default=["gemini-3-flash-preview-02-05", "gemini-2.5-flash"],
        description="Secondary Gemini models tried in order after the default",
    )

    # OpenAI configuration (for extraction_provider="openai")
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key (use env var INTAKE_OPENAI_API_KEY)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="Default OpenAI model",
    )
    openai_fallback_models: list[str] = Field(
        default=["gpt-4.1-mini"],
        description="Secondary OpenAI models tried in order after the default",
    )

    # Ollama configuration (for extraction_provider="ollama")
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for extraction (e.g., qwen2.5:7b, llama3.1:8b)",
    )
    ollama_fallback_models: list[str] = Field(
        default=[],
        description="Secondary Ollama models tried in order after the default",
    )

    # Remote call policy
    request_timeout_seconds: float = Field(
        default=90.0,
        gt=0,
        description="Per-call timeout; the in-flight request is aborted when it expires",
    )
    rate_limit_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per call when the backend answers HTTP 429",
    )
    rate_limit_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Initial backoff between rate-limited attempts",
    )

    # Intake behaviour
    diagnostics_max_entries: int = Field(
        default=180,
        ge=1,
        description="Size of the import diagnostic ring buffer",
    )
    chat_max_chars: int = Field(
        default=12000,
        ge=1,
        description="Maximum length of a chat-to-invoice request",
    )
    default_company_name: str = Field(
        default="",
        description="Company name used when an imported document has none",
    )
    default_company_details: str = Field(
        default="",
        description="Company address block used when an imported document has none",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
