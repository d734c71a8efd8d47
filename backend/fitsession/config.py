"""Application configuration management"""

import json
from functools import lru_cache
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from fitsession.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "FitBuddy Session Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 2

    # Session store
    SESSION_STORE_BACKEND: str = "database"  # database | memory

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "fitbuddy"
    POSTGRES_USER: str = "fitbuddy"
    POSTGRES_PASSWORD: str = "fitbuddy"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 5
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    # Refresh token encryption
    REFRESH_TOKEN_SECRET: str = ""

    # Admin authorization
    ADMIN_API_TOKEN: str = ""
    ADMIN_JWT_SECRET: str = ""
    ADMIN_JWT_ALGORITHM: str = "HS256"

    # Identity provider (Supabase auth)
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""
    IDENTITY_PROVIDER_TIMEOUT: float = 10.0

    # Session cookie and lifecycle
    SESSION_COOKIE_NAME: str = "fitbuddyai_sid"
    SESSION_COOKIE_MAX_AGE: int = 30 * 24 * 60 * 60
    SESSION_TTL_DAYS: int = 30
    SESSION_CREATE_MAX_ATTEMPTS: int = 3
    REFRESH_TOKEN_RETENTION_DAYS: int = 30
    REVOKED_SESSION_RETENTION_DAYS: int = 1

    # Rate Limiting
    REFRESH_RATE_LIMIT_PER_MINUTE: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:5173"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated origins from env.

        Examples:
            CORS_ORIGINS=["http://localhost:5173","https://fitbuddyai.app"]
            CORS_ORIGINS=http://localhost:5173,https://fitbuddyai.app
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @field_validator("SESSION_STORE_BACKEND", "ENVIRONMENT", mode="before")
    @classmethod
    def _normalize_choice(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Refuse to start without encryption configured, and refuse
        development-only shortcuts in production.

        Raises:
            ConfigurationError: If a required secret is missing or an
                insecure combination is detected.
        """
        if not self.REFRESH_TOKEN_SECRET.strip():
            raise ConfigurationError(
                "REFRESH_TOKEN_SECRET is not set. Refresh tokens cannot be stored unencrypted."
            )

        if self.SESSION_STORE_BACKEND not in ("database", "memory"):
            raise ConfigurationError(
                f"Unknown SESSION_STORE_BACKEND: {self.SESSION_STORE_BACKEND}"
            )

        if not self.is_production:
            return

        if len(self.REFRESH_TOKEN_SECRET) < 32:
            raise ConfigurationError(
                "REFRESH_TOKEN_SECRET is too short for production. Use `openssl rand -hex 32`."
            )

        if self.SESSION_STORE_BACKEND == "memory":
            raise ConfigurationError(
                "The in-memory session store is for local development only."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
