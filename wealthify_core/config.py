"""
Unified configuration for the wealthify client core.

This module provides a single Settings class for the request pipeline and
the real-time channel. Values are loaded from a .env file and can be
overridden by actual environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine project root for .env file loading (allows running from any CWD)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Settings for the wealthify API client.

    Timeouts and delays are in seconds.
    """

    # Service identification
    SERVICE_NAME: str = "wealthify-client"

    # REST API
    API_BASE_URL: str = "http://localhost:3001/api"
    REQUEST_TIMEOUT: float = 10.0

    # Retry policy (extra attempts beyond the first)
    RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 60.0

    # Auth endpoints
    LOGIN_PATH: str = "/auth/login"
    LOGOUT_PATH: str = "/auth/logout"
    REFRESH_PATH: str = "/auth/refresh-token"

    # Credential storage
    ACCESS_TOKEN_KEY: str = "wealthify_access_token"
    REFRESH_TOKEN_KEY: str = "wealthify_refresh_token"
    CREDENTIALS_FILE: str = ".wealthify/credentials.json"

    # Real-time channel
    WS_URL: str = "ws://localhost:3001"
    WS_PATH: str = "/dashboard"
    WS_MAX_RECONNECT_ATTEMPTS: int = 5
    WS_RECONNECT_BASE_DELAY: float = 1.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = SettingsConfigDict(
        env_file=PROJECT_ROOT / ".env",
        extra="ignore",
    )


# Global settings instance
settings = Settings()  # type: ignore
