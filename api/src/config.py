"""
FastAPI application configuration using Pydantic Settings.

Provides centralized configuration for:
- API settings (prefix, host, port, CORS)
- MongoDB connection and the persistence worker pool
- ViaCEP postal-code lookup (timeout, response size, retry policy)
- Pagination defaults
- Logging and monitoring

All settings support environment variable overrides and .env file loading.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables with the
    prefix "ADMISSAO_API_" (e.g., ADMISSAO_API_MONGODB_URL).

    Environment variables are loaded from:
    1. System environment
    2. .env file in the current directory
    3. Default values defined below
    """

    # =========================================================================
    # API Settings
    # =========================================================================

    app_name: str = Field(
        default="Admissao API",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="API version"
    )
    api_prefix: str = Field(
        default="/api",
        description="API URL prefix"
    )

    debug: bool = Field(
        default=False,
        description="Debug mode - enables verbose logging and error traces"
    )
    environment: str = Field(
        default="production",
        description="Environment: development|staging|production"
    )

    host: str = Field(
        default="0.0.0.0",
        description="API bind host"
    )
    port: int = Field(
        default=8080,
        description="API bind port",
        gt=0,
        lt=65536
    )

    # =========================================================================
    # MongoDB Settings
    # =========================================================================

    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URL"
    )
    mongodb_database: str = Field(
        default="admissao",
        description="MongoDB database name"
    )
    mongodb_collection: str = Field(
        default="admissoes",
        description="Collection holding admission records"
    )
    mongodb_server_selection_timeout_ms: int = Field(
        default=5000,
        description="Server selection timeout (milliseconds)",
        gt=0
    )

    persistence_max_workers: int = Field(
        default=10,
        description="Worker threads for blocking MongoDB calls",
        gt=0,
        le=200
    )

    # =========================================================================
    # ViaCEP Settings
    # =========================================================================

    viacep_base_url: str = Field(
        default="https://viacep.com.br",
        description="ViaCEP base URL"
    )
    viacep_timeout_seconds: float = Field(
        default=2.0,
        description="Deadline for a single lookup attempt (seconds)",
        gt=0
    )
    viacep_max_response_bytes: int = Field(
        default=16 * 1024 * 1024,  # 16 MB
        description="Maximum lookup response body size in bytes",
        gt=0
    )
    viacep_retry_max_attempts: int = Field(
        default=3,
        description="Attempts made by the 'viacep' retry policy",
        ge=1,
        le=10
    )
    viacep_retry_initial_delay: float = Field(
        default=0.5,
        description="Delay before the first retry (seconds)",
        ge=0
    )
    viacep_retry_max_delay: float = Field(
        default=5.0,
        description="Upper bound for a single retry delay (seconds)",
        ge=0
    )
    viacep_retry_exponential_base: float = Field(
        default=2.0,
        description="Backoff multiplier between attempts",
        ge=1.0
    )
    viacep_retry_jitter: bool = Field(
        default=True,
        description="Randomize retry delays by +/- 20%"
    )

    # =========================================================================
    # Pagination Settings
    # =========================================================================

    pagination_default_size: int = Field(
        default=20,
        description="Default page size",
        gt=0
    )

    # =========================================================================
    # CORS Settings
    # =========================================================================

    cors_enabled: bool = Field(
        default=False,
        description="Enable CORS middleware"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )
    cors_allow_methods: List[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        description="Allowed HTTP methods"
    )
    cors_allow_headers: List[str] = Field(
        default=["*"],
        description="Allowed HTTP headers"
    )

    # =========================================================================
    # Monitoring and Logging
    # =========================================================================

    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics"
    )

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG|INFO|WARNING|ERROR|CRITICAL"
    )
    log_format: str = Field(
        default="json",
        description="Log format: json|text"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got: {v}")
        return v_upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = ["development", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        allowed = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("viacep_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # =========================================================================
    # Model Config
    # =========================================================================

    model_config = SettingsConfigDict(
        env_prefix="ADMISSAO_API_",  # Environment variable prefix
        env_file=".env",              # Load from .env file
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",               # Ignore extra environment variables
        validate_default=True,        # Validate default values
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and shared
    across the application.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from api.src.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.viacep_base_url)
        https://viacep.com.br
    """
    return Settings()


def clear_settings_cache():
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
