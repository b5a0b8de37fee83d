"""
Configuration module for the TYUST portal gateway.

This module uses Pydantic Settings to load and validate environment variables
for session JWT management, upstream portal endpoints, credential caching
and the teaching calendar.

Environment variables are loaded from .env file or system environment.
"""

from datetime import date
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Upstream hostnames default to the production portal so that only the
    JWT secret is strictly required.
    """

    # =========================================================================
    # Session JWT Configuration
    # =========================================================================

    SESSION_JWT_SECRET: str = Field(
        ...,
        description="Secret key for signing session JWTs (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384, or HS512)",
    )

    SESSION_JWT_EXPIRY_MINUTES: int = Field(
        default=1440,
        description="Session JWT expiry time in minutes",
        ge=5,
        le=10080,
    )

    JWT_ISSUER: str = Field(
        default="tyust-gateway",
        description="Issuer claim written into and required from session JWTs",
    )

    # =========================================================================
    # Upstream Portal Endpoints
    # =========================================================================

    SSO_BASE_URL: str = Field(
        default="https://sso1.tyust.edu.cn",
        description="Identity provider (CAS) host",
    )

    ACCESS_BASE_URL: str = Field(
        default="https://zero.tyust.edu.cn",
        description="Access gateway that turns CAS tickets into access tokens",
    )

    JWGLXT_BASE_URL: str = Field(
        default="https://newjwc.tyust.edu.cn",
        description="Academic affairs system (schedules, grades)",
    )

    PORTAL_BASE_URL: str = Field(
        default="https://ronghemenhu.tyust.edu.cn",
        description="Secondary campus portal (user profile)",
    )

    CAS_EXTERNAL_ID: str = Field(
        default="r3IveGXj",
        description="External id of the access gateway's CAS callback",
    )

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout applied to every upstream request",
        gt=0,
    )

    USER_AGENT: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/115.0",
        description="User-Agent sent to the upstream portal",
    )

    REDIRECT_HOP_LIMIT: int = Field(
        default=10,
        description="Hop budget for the final session redirect walk",
        ge=0,
        le=50,
    )

    # =========================================================================
    # Credential Cache
    # =========================================================================

    AUTH_BUNDLE_TTL_HOURS: int = Field(
        default=24,
        description="Lifetime of cached upstream credentials",
        ge=1,
    )

    CLEANUP_INTERVAL_SECONDS: int = Field(
        default=3600,
        description="Interval between sweeps of expired cached credentials",
        ge=1,
    )

    # =========================================================================
    # Teaching Calendar
    # =========================================================================

    ACADEMIC_YEAR: str = Field(
        default="2025",
        description="Academic year code (xnm) used for the schedule query",
    )

    TERM: str = Field(
        default="3",
        description="Term code (xqm): 3 for the first term, 12 for the second",
    )

    SEMESTER_NAME: Optional[str] = Field(
        None,
        description="Display name of the current semester",
    )

    SEMESTER_START_DATE: Optional[date] = Field(
        None,
        description="First day of week 1 (YYYY-MM-DD)",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(default="0.0.0.0")

    PORT: int = Field(default=3000, ge=1, le=65535)

    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate JWT algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator(
        "SSO_BASE_URL", "ACCESS_BASE_URL", "JWGLXT_BASE_URL", "PORTAL_BASE_URL"
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Upstream URL must be absolute, got: {v}")
        return v.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()
