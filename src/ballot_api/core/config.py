"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="PostgreSQL async connection string",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # JWT
    jwt_secret_key: str = Field(min_length=32, description="Secret key for signing JWTs (minimum 32 characters)")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_access_token_expire_minutes: int = Field(
        default=30,
        description="Access token expiration in minutes",
        gt=0,
    )
    jwt_refresh_token_expire_days: int = Field(
        default=7,
        description="Refresh token expiration in days",
        gt=0,
    )

    # One-time codes
    otp_code_length: int = Field(
        default=6,
        description="Number of digits in a one-time code",
        ge=4,
        le=10,
    )
    otp_expiration_minutes: int = Field(
        default=10,
        description="Minutes a one-time code stays valid after issuance",
        gt=0,
    )
    otp_max_attempts: int = Field(
        default=3,
        description="Wrong guesses allowed before a one-time code is closed",
        gt=0,
    )
    otp_resend_cooldown_minutes: int = Field(
        default=2,
        description="Minimum minutes between two codes for the same email and purpose",
        ge=0,
    )
    otp_max_requests_per_hour: int = Field(
        default=3,
        description="Maximum codes issued to one email within a rolling hour",
        gt=0,
    )
    otp_max_requests_per_day: int = Field(
        default=10,
        description="Maximum codes issued to one email within a rolling day",
        gt=0,
    )
    otp_retention_days: int = Field(
        default=7,
        description="Days a used code is kept before the cleanup sweep deletes it",
        gt=0,
    )
    otp_cleanup_enabled: bool = Field(
        default=True,
        description="Run the periodic expired-code sweep in the API process",
    )
    otp_cleanup_interval: int = Field(
        default=300,
        description="Seconds between expired-code sweeps",
        ge=10,
    )
    otp_echo_code: bool = Field(
        default=False,
        description="Return issued codes in API responses (non-production testing only)",
    )

    # Account lockout
    max_failed_logins: int = Field(
        default=5,
        description="Consecutive failed logins that lock an account",
        gt=0,
    )
    lockout_duration_minutes: int = Field(
        default=30,
        description="Minutes an account stays locked after too many failed logins",
        gt=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )
    cors_origin_regex: str = Field(
        default="",
        description="Regex pattern for allowed CORS origins",
    )

    # Environment
    environment: str = Field(
        default="production",
        description="Deployment environment name (e.g. production, dev, staging)",
    )

    @model_validator(mode="after")
    def validate_echo_code_environment(self) -> "Settings":
        if self.otp_echo_code and self.environment.strip().lower() == "production":
            msg = "otp_echo_code cannot be enabled when environment is 'production'"
            raise ValueError(msg)
        return self

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )
    rate_limit_per_minute: int = Field(
        default=200,
        description="Maximum API requests per minute per IP address",
        gt=0,
    )
    trusted_proxy_headers: str = Field(
        default="CF-Connecting-IP,X-Forwarded-For,X-Real-IP",
        description="Comma-separated list of HTTP headers to check for real client IP, in priority order",
    )

    @property
    def trusted_proxy_header_list(self) -> list[str]:
        """Parse trusted proxy headers string into a list."""
        if not self.trusted_proxy_headers.strip():
            return []
        return [h.strip() for h in self.trusted_proxy_headers.split(",") if h.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
