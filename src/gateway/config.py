"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

VERSION = "0.1.0"


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Upstream CRM
    PIPERUN_API_BASE_URL: str = "https://api.pipe.run/v1"
    PIPERUN_API_TOKEN: str = ""  # Optional process-wide default credential

    # HTTP front end
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Resilient request layer
    REQUEST_TIMEOUT: float = 30.0  # Per attempt, seconds
    MAX_RETRIES: int = 3
    INITIAL_RETRY_DELAY: float = 1.0  # Seconds before the first retry

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    def cors_origins(self) -> list[str]:
        """Return the allowed CORS origins as a list."""
        if self.CORS_ALLOWED_ORIGINS == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
