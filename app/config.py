"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    database_create_schema: bool = True  # create missing tables on startup

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Promo Code API"
    api_version: str = "0.1.0"
    api_description: str = "User authentication and promotional discount codes"

    # Bearer tokens
    jwt_secret: str = ""  # generate with: openssl rand -hex 32
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    tracing_sample_ratio: float = 1.0  # share of root spans recorded
    service_name: str = "promo-code-api"

    # Cache
    cache_max_entries: int = 10_000
    promo_cache_ttl_seconds: int = 60  # code lookups, access and usage checks
    promo_list_cache_ttl_seconds: int = 600  # admin listing

    # Rate limiting (validation endpoint only)
    validate_rate_limit_per_user: int = 10
    validate_rate_limit_per_ip: int = 50
    validate_rate_limit_window_seconds: int = 60
    trust_forwarded_for: bool = False  # take client IP from X-Forwarded-For

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        This prevents silent failures that only manifest at runtime.
        """
        errors: list[str] = []

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        # Tokens cannot be signed without a secret
        if not self.jwt_secret:
            errors.append("JWT_SECRET is required but empty or missing")

        if not 0.0 <= self.tracing_sample_ratio <= 1.0:
            errors.append("TRACING_SAMPLE_RATIO must be between 0 and 1")

        if self.promo_cache_ttl_seconds <= 0 or self.promo_list_cache_ttl_seconds <= 0:
            errors.append("Cache TTLs must be positive")

        # If we have errors, fail immediately with clear messaging
        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
