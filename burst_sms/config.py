from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.

    Gateway credentials default to empty; routes that need them raise
    ConfigurationError at call time instead of failing at import.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration - required
    DATABASE_URL: str

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Bearer token shared with internal callers (cron, admin UI)
    INTERNAL_GATEWAY_TOKEN: str = ""

    # Telnyx credentials: either the key itself or a Secrets Manager id
    TELNYX_API_KEY: str = ""
    TELNYX_SECRET_ID: str = ""
    AWS_REGION: str = "us-east-1"

    TELNYX_API_BASE: str = "https://api.telnyx.com/v2"
    GATEWAY_TIMEOUT_SECONDS: float = 15.0


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()
