"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


_DEFAULT_JWT_SECRET = "dev-insecure-key-change-me"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Every field maps to an upper-case environment variable
    (``CHUNK_CONCURRENCY``, ``GENERATION_MODEL``...) or a line in ``.env``.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./vaultgen.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(default=5, description="Number of persistent database connections")
    db_max_overflow: int = Field(default=10, description="Extra connections allowed during bursts")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a pooled connection")
    db_pool_recycle: int = Field(default=1800, description="Seconds before a connection is recycled")

    # Authentication
    # AUTH_ENABLED: when False, every request runs as the development owner.
    jwt_secret_key: str = Field(
        default=_DEFAULT_JWT_SECRET,
        description="JWT signing secret (override in production)"
    )
    jwt_algorithm: str = Field(default="HS256")
    auth_enabled: bool = Field(
        default=False,
        description="Enable JWT authentication (False for development)"
    )
    dev_owner_id: str = Field(
        default="dev-user",
        description="Owner id used for every request when auth is disabled"
    )
    auth_cache_ttl_seconds: int = Field(
        default=300,
        description="Seconds a verified token stays in the verification cache"
    )
    auth_cache_max_entries: int = Field(
        default=1024,
        description="Maximum number of verified tokens kept in the cache"
    )

    # Generation provider (LiteLLM model string, e.g. "openai/gpt-4o-mini")
    generation_model: str = Field(
        default="",
        description="LiteLLM model used for chunk generation (empty = disabled)"
    )
    generation_api_key: str = Field(default="", description="API key for the generation provider")
    generation_api_base: str = Field(default="", description="Base URL for the generation provider (optional)")
    generation_temperature: float = Field(default=0.7)

    # Chunked generation
    # Upper bound on in-flight chunk calls for one job. Kept low so a single
    # job cannot exhaust the provider's rate limit.
    chunk_concurrency: int = Field(
        default=4,
        description="Maximum concurrent chunk calls per job (1-6)"
    )
    chunk_timeout_seconds: int = Field(
        default=90,
        description="Default wall-clock timeout for one chunk call"
    )

    # Job tracking
    job_recency_window_minutes: int = Field(
        default=10,
        description="Jobs older than this are left out of active/recent listings"
    )
    update_status_window_seconds: int = Field(
        default=120,
        description="Content writes newer than this count as recent updates"
    )
    stale_job_minutes: int = Field(
        default=15,
        description="Processing jobs without progress for this long are failed by the worker"
    )
    worker_poll_interval: int = Field(default=10, description="Seconds between worker polls")

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """
        Get CORS origins as a list.

        Parses comma-separated string and validates no wildcards.
        """
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('chunk_concurrency')
    @classmethod
    def validate_chunk_concurrency(cls, v: int) -> int:
        if not 1 <= v <= 6:
            raise ValueError("chunk_concurrency must be between 1 and 6")
        return v

    def is_generation_configured(self) -> bool:
        return bool(self.generation_model)

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if security-critical settings use insecure defaults.

        Raises:
            ConfigurationError: If production config is insecure.
        """
        errors: list[str] = []

        if self.jwt_secret_key == _DEFAULT_JWT_SECRET:
            errors.append(
                "JWT_SECRET_KEY is using the default insecure value. "
                "Generate a secure key: openssl rand -hex 32"
            )

        if not self.auth_enabled:
            errors.append("AUTH_ENABLED is false. Authentication must be enabled in production.")

        if not self.generation_model:
            errors.append("GENERATION_MODEL is empty. Chunk generation cannot run.")

        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is insecure:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
