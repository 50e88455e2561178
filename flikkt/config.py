"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flikkt.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 5
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Flikkt Analysis API"
    api_version: str = "0.1.0"
    api_description: str = "Food and medication compatibility analysis for Flikkt"

    # Auth - tokens are HS256 JWTs signed by the auth provider
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"

    # LLM provider (OpenAI-compatible chat completions)
    openai_api_key: str = ""  # Empty key switches analysis to demo responses
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    openai_max_tokens: int = 1000
    openai_temperature: float = 0.3
    openai_timeout_seconds: float = 60.0

    # Scan quota
    free_scans_per_month: int = 5
    quota_fail_open: bool = True  # Proceed with analysis when the quota check errors

    # Payment Provider - Stripe
    stripe_api_key: str = ""
    stripe_basic_price_minor: int = 999
    stripe_premium_price_minor: int = 1999
    stripe_currency: str = "usd"
    site_url: str = "http://localhost:5173"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "flikkt-api"

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
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.free_scans_per_month < 0:
            errors.append(
                f"FREE_SCANS_PER_MONTH must be non-negative, got: {self.free_scans_per_month}"
            )

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
    def llm_configured(self) -> bool:
        """Whether a real LLM key is available (otherwise demo responses are served)."""
        return bool(self.openai_api_key)


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
