"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


def _csv(value: str) -> frozenset[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Entity Audit"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./entity_audit.db"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Auditing
    # Initial value of the enabled flag for every new execution context.
    AUDITING_ENABLED: bool = os.getenv("AUDITING_ENABLED", "true").lower() == "true"
    # Bookkeeping columns that never show up in an audit's changes.
    AUDIT_IGNORED_ATTRIBUTES: frozenset[str] = _csv(
        os.getenv("AUDIT_IGNORED_ATTRIBUTES", "created_at,updated_at")
    )
    # How many times a version conflict is retried before giving up.
    AUDIT_VERSION_RETRIES: int = int(os.getenv("AUDIT_VERSION_RETRIES", "3"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")
    LOG_REDACT: bool = os.getenv("LOG_REDACT", "true").lower() == "true"


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
