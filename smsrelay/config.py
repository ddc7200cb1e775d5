from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        # Empty values count as missing, so an empty BROKER_URL fails at startup
        env_ignore_empty=True,
    )

    # Broker Configuration - required, carries the broker credential
    # e.g. redis://:password@localhost:6379/0
    BROKER_URL: str

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Upper bound for a single publish round-trip
    PUBLISH_TIMEOUT_SECONDS: float = 5.0

    # Pause before a subscriber resumes listening after the transport dropped
    RESUBSCRIBE_DELAY_SECONDS: float = 1.0


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
