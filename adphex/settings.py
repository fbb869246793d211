"""Application settings using pydantic-settings.

Loads configuration from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Allow both field name and alias
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    debug: bool = False

    # Adphex API
    api_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the Adphex web app serving /api/chat",
        validation_alias=AliasChoices("api_base_url", "adphex_url"),
    )
    api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token for the Adphex API (empty = no Authorization header)",
        validation_alias=AliasChoices("api_token", "adphex_token"),
    )
    user_id: str = Field(
        default="default-user",
        description="User ID sent with every chat request",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for JSON endpoints (accounts, assignment)",
    )
    stream_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Read timeout in seconds for the streamed chat response",
    )

    # Demo mode
    demo_mode: bool = Field(
        default=False,
        description="Limit the number of questions a session may ask",
    )
    demo_max_questions: int = Field(
        default=3,
        ge=1,
        description="Question ceiling when demo_mode is enabled",
    )

    # Tool whose successful result triggers the refresh callback
    refresh_tool_name: str = Field(
        default="categorize_transaction",
        description="Tool name that, on a successful result, triggers a data refresh",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level for adphex loggers",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
