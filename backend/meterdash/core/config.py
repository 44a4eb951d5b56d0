"""
Application configuration management using Pydantic settings.
"""
import json
from datetime import date
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


MOJ_ELEKTRO_URLS = {
    "production": "https://api.informatika.si/mojelektro/v1",
    "test": "https://api-test.informatika.si/mojelektro/v1",
}


class ConfigurationError(Exception):
    """A setting required by the requested command is missing."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "Meter Dashboard"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "local"  # local, staging, production

    # API
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from environment variable.

        Supports:
        - JSON array: '["https://example.com","https://app.example.com"]'
        - Comma-separated: 'https://example.com,https://app.example.com'
        - Single string: 'https://example.com'
        """
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass

            if ',' in v:
                return [origin.strip() for origin in v.split(',') if origin.strip()]

            return [v.strip()] if v.strip() else []

        return v

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/meterdash"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Moj Elektro API
    MOJ_ELEKTRO_API_KEY: Optional[str] = None
    MOJ_ELEKTRO_ENV: str = "production"  # production or test
    MOJ_ELEKTRO_TIMEOUT: float = 30.0

    @field_validator('MOJ_ELEKTRO_ENV', mode='before')
    @classmethod
    def normalize_api_env(cls, v):
        """Anything other than 'test' targets the production endpoint."""
        if isinstance(v, str) and v.strip().lower() == "test":
            return "test"
        return "production"

    # Ingestion
    TARGET_GSRN: Optional[str] = None
    TARGET_READING_TYPE_CODE: Optional[str] = None
    SEED_START_DATE: date = date(2025, 4, 11)
    SEED_USER_EMAIL: str = "seed@localhost"
    SEED_USER_NAME: str = "Seed User"
    INGEST_DAY_DELAY_SECONDS: float = 0.5

    # Aggregation (IANA zone name; empty uses the stored timestamp zone)
    AGGREGATION_TIMEZONE: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    # Monitoring
    SENTRY_DSN: Optional[str] = None
    ENABLE_METRICS: bool = True

    @property
    def moj_elektro_base_url(self) -> str:
        return MOJ_ELEKTRO_URLS[self.MOJ_ELEKTRO_ENV]


settings = Settings()
