"""
Steady Vitality - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Security: Override JWT_SECRET in every non-development environment.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


DEFAULT_JWT_SECRET = "default_jwt_secret_change_me"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        DATABASE_URL: Async SQLAlchemy URL (aiosqlite locally, asyncpg in production)
        JWT_SECRET: HMAC key for access and refresh tokens
        JWT_EXPIRE: Access token lifetime ("1h", "15m", "3600", ...)
        JWT_REFRESH_EXPIRE: Refresh token lifetime
        SESSION_EXPIRE_HOURS: Server-side session lifetime for a normal login
        REMEMBER_ME_SESSION_HOURS: Session lifetime when "remember me" is set
        BCRYPT_ROUNDS: bcrypt cost factor
        ALLOWED_ORIGINS: CORS allowed origins for the web client
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Steady Vitality"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./steady_vitality.db"

    # Tokens
    JWT_SECRET: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE: str = "1h"
    JWT_REFRESH_EXPIRE: str = "7d"

    # Sessions
    SESSION_EXPIRE_HOURS: int = 24
    REMEMBER_ME_SESSION_HOURS: int = 168
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Credentials
    BCRYPT_ROUNDS: int = 12
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"

    # Seed account (scripts/seed_users.py)
    DEFAULT_ADMIN_EMAIL: str = "admin@steadyvitality.com"
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "Admin123!"


settings = Settings()
