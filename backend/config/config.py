"""
Application configuration with environment-based settings.
All configuration is explicit, validated, and logged at startup.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development. The analysis
    credential has no default: without it every analysis request fails
    with a configuration error before anything is sent.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="MedSecure Diagnostics", description="Application name")
    app_version: str = Field(default="2.4.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # Remote analysis model (OpenAI-compatible endpoint, Gemini by default)
    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("api_key", "gemini_api_key"),
        description="Analysis service API key (API_KEY or GEMINI_API_KEY)",
    )
    analysis_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/",
        description="OpenAI-compatible base URL of the analysis service"
    )
    analysis_model: str = Field(default="gemini-2.5-flash", description="Vision model to use")
    llm_max_tokens: int = Field(default=2048, description="Max tokens per response")
    llm_temperature: float = Field(default=0.2, description="Model temperature")

    # Connectivity pre-flight
    offline_mode: bool = Field(default=False, description="Report the network as unavailable")
    connectivity_probe: Literal["static", "tcp"] = Field(
        default="static",
        description="How network availability is checked before an analysis"
    )
    connectivity_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Timeout for the TCP reachability probe"
    )

    # Authentication
    auth_mode: Literal["demo", "static"] = Field(
        default="demo",
        description="Credential verifier: 'demo' accepts any non-empty credentials"
    )
    auth_username: str = Field(default="", description="Username for the static verifier")
    auth_password: str = Field(default="", description="Password for the static verifier")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def get_safe_config_dict(self) -> dict:
        """Return configuration dict with secrets redacted for logging."""
        config = self.model_dump()
        # Redact sensitive values
        for key in ("api_key", "auth_password"):
            if config.get(key):
                config[key] = "***REDACTED***"
        return config


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for the application lifetime.
    Pass an explicit Settings to create_app() in tests.
    """
    return Settings()
