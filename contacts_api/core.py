"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helper functions for accessing cached settings
and email configuration.
"""

from functools import lru_cache
from typing import List

from fastapi_mail import ConnectionConfig
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        SECRET_KEY: Secret key used to sign access tokens.
        REFRESH_SECRET_KEY: Secret key used to sign refresh tokens.
        ALGORITHM: Algorithm used to encode JWT tokens.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        REFRESH_TOKEN_EXPIRE_MINUTES: Refresh token lifetime in minutes.
        ACTIVATION_EXPIRE_MINUTES: How long a pending registration stays
            valid before it can be superseded.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for rate limiting.
        RATE_LIMIT_TIMES: Requests allowed per window on login and
            password reset.
        RATE_LIMIT_SECONDS: Length of the rate limit window.
        SMTP_FROM_EMAIL: Sender email address for outgoing emails.
        SMTP_USER: SMTP username.
        SMTP_PASSWORD: SMTP password.
        SMTP_PORT: SMTP server port.
        SMTP_HOST: SMTP server host.
        MAIL_STARTTLS: Upgrade the SMTP connection with STARTTLS.
        MAIL_SUPPRESS_SEND: Build messages without delivering them.
        MAIL_TIMEOUT_SECONDS: Upper bound on a single email dispatch.
        BASE_URL: Base URL of the application, used in activation links.
        LOG_LEVEL: Root logging level.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    DATABASE_URL: str = "sqlite:///./app.db"
    SECRET_KEY: str = "dev-secret"
    REFRESH_SECRET_KEY: str = "dev-refresh-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    ACTIVATION_EXPIRE_MINUTES: int = 60 * 24
    ALLOWED_ORIGINS: List[str] = ["*"]
    REDIS_URL: str = "redis://redis:6379"
    RATE_LIMIT_TIMES: int = 5
    RATE_LIMIT_SECONDS: int = 60
    SMTP_FROM_EMAIL: str = "noreply@example.com"
    SMTP_USER: str = "user"
    SMTP_PASSWORD: str = "password"
    SMTP_PORT: int = 1025
    SMTP_HOST: str = "localhost"
    MAIL_STARTTLS: bool = False
    MAIL_SUPPRESS_SEND: bool = False
    MAIL_TIMEOUT_SECONDS: float = 30.0
    BASE_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def get_mail_config() -> ConnectionConfig:
    """Create and return email configuration for FastAPI-Mail.

    Returns:
        ConnectionConfig: Configured email connection settings.
    """

    settings = get_settings()
    return ConnectionConfig(
        MAIL_USERNAME=settings.SMTP_USER,
        MAIL_PASSWORD=settings.SMTP_PASSWORD,
        MAIL_FROM=settings.SMTP_FROM_EMAIL,
        MAIL_PORT=settings.SMTP_PORT,
        MAIL_SERVER=settings.SMTP_HOST,
        MAIL_STARTTLS=settings.MAIL_STARTTLS,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=bool(settings.SMTP_USER),
        SUPPRESS_SEND=int(settings.MAIL_SUPPRESS_SEND),
    )
