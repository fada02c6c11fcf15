"""Engine configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "test", "production"] = Field(default="development")

    # Service discovery
    conversation_service_url: str = Field(default="https://conv-a.wbx2.com/conversation/api/v1")
    service_urls: dict[str, str] = Field(default_factory=dict)

    # Auth
    access_token: str | None = Field(default=None)

    # HTTP transport
    http_timeout_seconds: float = Field(default=30.0)
    http_max_attempts: int = Field(default=3)
    http_base_backoff_seconds: float = Field(default=0.5)
    http_max_backoff_seconds: float = Field(default=8.0)

    # Limits
    max_avatar_bytes: int = Field(default=1024 * 1024)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
