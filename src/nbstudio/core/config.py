"""Configuration management for NB Studio.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the NBSTUDIO_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (NBSTUDIO_* prefix)
2. .env file in the project root
3. Default values defined in StudioConfig

Example .env file:
    NBSTUDIO_GEMINI_API_KEY=your-api-key
    NBSTUDIO_GEMINI_IMAGE_MODEL=gemini-2.5-flash-image
    NBSTUDIO_SESSION_SECRET=change-me
    NBSTUDIO_ALLOWED_EMAILS=alice@example.com,bob@example.com

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from nbstudio.core.config import config

    print(config.gemini_image_model)
    print(config.max_file_size_bytes)

Authentication Settings
-----------------------
Sign-in uses Google OAuth.  When ``google_client_id`` or
``google_client_secret`` is missing the login route is disabled and a warning
is logged at startup.  ``allowed_emails`` restricts sign-in to a comma
separated list of addresses; an empty value allows every verified Google
account.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StudioConfig(BaseSettings):
    """Main configuration for NB Studio.

    Values are loaded from environment variables with the NBSTUDIO_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Gemini Settings:
        gemini_api_key : str | None
            API key for Google Gemini.  Generation routes return 500 when unset.
        gemini_image_model : str
            Gemini model used for every image request.

    Upload Settings:
        max_file_size_mb : int
            Per-file upload ceiling in megabytes.

    Auth Settings:
        session_secret : str | None
            Secret used to sign session cookies.
        google_client_id : str | None
            OAuth client id for Google sign-in.
        google_client_secret : str | None
            OAuth client secret for Google sign-in.
        allowed_emails : str
            Comma separated allow-list of sign-in emails (empty = everyone).

    Server Settings:
        server_host : str
            Server bind address.
        server_port : int
            Server port (1024-65535).
        cors_origins : str
            Comma separated list of allowed CORS origins.
        log_level : Literal["DEBUG", "INFO", "WARNING", "ERROR"]
            Root log level applied by ``main()``.

    Progress / Client Settings:
        progress_tick_interval_ms : int
            Recompute cadence of the progress estimator.
        url_fetch_timeout_seconds : float
            Timeout for URL metadata and og:image fetches.

    Examples
    --------
        >>> custom_config = StudioConfig(
        ...     gemini_api_key="test-key",
        ...     max_file_size_mb=4,
        ... )
        >>> custom_config.max_file_size_bytes
        4194304
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NBSTUDIO_",
        case_sensitive=False,
    )

    # Gemini settings
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Gemini API key",
    )
    gemini_image_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Gemini model used for image generation and editing",
    )

    # Upload limits
    max_file_size_mb: int = Field(
        default=8,
        description="Maximum size of a single uploaded image in megabytes",
        ge=1,
        le=64,
    )

    # Auth settings
    session_secret: str | None = Field(
        default=None,
        description="Secret used to sign session cookies",
    )
    google_client_id: str | None = Field(
        default=None,
        description="Google OAuth client id",
    )
    google_client_secret: str | None = Field(
        default=None,
        description="Google OAuth client secret",
    )
    allowed_emails: str = Field(
        default="",
        description="Comma separated list of emails allowed to sign in (empty = all)",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )
    cors_origins: str = Field(
        default="*",
        description="Comma separated list of allowed CORS origins",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level",
    )

    # Progress estimator / client settings
    progress_tick_interval_ms: int = Field(
        default=100,
        description="Progress estimator recompute interval in milliseconds",
        ge=10,
        le=1000,
    )
    url_fetch_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for URL metadata and og:image fetches",
        gt=0,
    )

    @property
    def max_file_size_bytes(self) -> int:
        """Upload ceiling in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def allowed_email_set(self) -> frozenset[str]:
        """Normalised (lower-cased, stripped) allow-list of sign-in emails."""
        return frozenset(
            email.strip().lower() for email in self.allowed_emails.split(",") if email.strip()
        )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def has_google_auth(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


# Global configuration instance
# Loads values from environment variables (NBSTUDIO_* prefix) and .env file.
config = StudioConfig()
