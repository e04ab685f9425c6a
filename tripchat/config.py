from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ==========================================================================
    # MongoDB Configuration
    # ==========================================================================
    mongodb_uri: str
    mongodb_database: str = "tripchat"

    # ==========================================================================
    # Redis Configuration
    # ==========================================================================
    redis_url: str

    # ==========================================================================
    # JWT Configuration (REQUIRED - no default)
    # ==========================================================================
    jwt_secret: str  # No default - must be configured
    jwt_algorithm: str = "HS256"
    auth_cookie_name: str = "token"

    # ==========================================================================
    # Chat Configuration
    # ==========================================================================
    chat_message_max_length: int = 2000
    chat_page_default_limit: int = 10
    chat_page_max_limit: int = 50
    storage_timeout_seconds: float = 5.0  # Applied at every Mongo call boundary
    chat_send_rate_limit: int = 20  # Messages per window, per connection
    chat_send_rate_window_seconds: float = 10.0

    # ==========================================================================
    # Rate Limiting (REST)
    # ==========================================================================
    rate_limit_per_minute: int = 60
    rate_limit_auth_per_minute: int = 300

    # ==========================================================================
    # Telegram Log Forwarding (optional)
    # ==========================================================================
    telegram_bot_token: Optional[str] = None
    telegram_log_chat_id: str = ""

    # ==========================================================================
    # Application Settings
    # ==========================================================================
    api_v1_str: str = "/api/v1"
    debug: bool = True
    cors_origins: str  # No default - must be configured

    @field_validator("chat_page_max_limit")
    @classmethod
    def validate_page_max_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("CHAT_PAGE_MAX_LIMIT must be at least 1")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into list."""
        if self.cors_origins == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-reading env vars on every request.
    """
    return Settings()


# Convenience export
settings = get_settings()
