"""Environment-driven configuration for accessflow.

Each section is a pydantic-settings model with its own ``ACCESSFLOW_*``
prefix and is cached after first load. Defaults target a local
PostgreSQL; deployments override them through the environment.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings.

    Environment variables:
        ACCESSFLOW_DB_HOST: Database host (default: localhost)
        ACCESSFLOW_DB_PORT: Database port (default: 5432)
        ACCESSFLOW_DB_DATABASE: Database name (default: accessflow)
        ACCESSFLOW_DB_USERNAME: Database user (default: accessflow)
        ACCESSFLOW_DB_PASSWORD: Database password (required in production)
        ACCESSFLOW_DB_POOL_MIN_CONNECTIONS: Minimum connections in pool (default: 2)
        ACCESSFLOW_DB_POOL_MAX_CONNECTIONS: Maximum connections in pool (default: 10)
        ACCESSFLOW_DB_ECHO: Log emitted SQL (default: false)
    """

    model_config = SettingsConfigDict(
        env_prefix="ACCESSFLOW_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="accessflow", description="Database name")
    username: str = Field(default="accessflow", description="Database username")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password",
    )
    pool_min_connections: int = Field(
        default=2,
        description="Minimum connections in pool",
        ge=1,
        le=100,
    )
    pool_max_connections: int = Field(
        default=10,
        description="Maximum connections in pool",
        ge=1,
        le=100,
    )
    echo: bool = Field(default=False, description="Log emitted SQL statements")

    @model_validator(mode="after")
    def check_pool_bounds(self) -> "DatabaseSettings":
        """Reject a pool whose upper bound is below its lower bound."""
        if self.pool_min_connections > self.pool_max_connections:
            raise ValueError(
                "pool_max_connections must not be smaller than "
                f"pool_min_connections (got {self.pool_max_connections} "
                f"< {self.pool_min_connections})"
            )
        return self

    @property
    def connection_string(self) -> str:
        """Redacted DSN, safe to put in log lines."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"


class AccessSettings(BaseSettings):
    """Access-control engine settings.

    Environment variables:
        ACCESSFLOW_ACCESS_BULK_LIMIT: Max ids per bulk call (default: 100)
        ACCESSFLOW_ACCESS_BULK_CONCURRENCY: Items provisioned in parallel (default: 8)
        ACCESSFLOW_ACCESS_REJECT_REASON_MAX_LENGTH: Max rejection reason length (default: 500)
    """

    model_config = SettingsConfigDict(
        env_prefix="ACCESSFLOW_ACCESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    bulk_limit: int = Field(
        default=100,
        description="Maximum number of ids accepted by a bulk operation",
        ge=1,
        le=1000,
    )
    bulk_concurrency: int = Field(
        default=8,
        description="Number of bulk items processed concurrently",
        ge=1,
        le=64,
    )
    reject_reason_max_length: int = Field(
        default=500,
        description="Maximum length of a rejection reason",
        ge=1,
    )


class Settings(BaseSettings):
    """Process-wide settings plus accessors for the other sections.

    Environment variables:
        ACCESSFLOW_LOG_LEVEL: Minimum level emitted by structlog (default: INFO)
        ACCESSFLOW_LOG_FORMAT: ``console``, ``json`` or ``auto`` (default: auto)
    """

    model_config = SettingsConfigDict(
        env_prefix="ACCESSFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="accessflow", description="Application name")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_format: Literal["auto", "console", "json"] = Field(
        default="auto", description="Log renderer; auto picks by TTY"
    )

    @property
    def database(self) -> DatabaseSettings:
        return get_database_settings()

    @property
    def access(self) -> AccessSettings:
        return get_access_settings()


@lru_cache
def get_settings() -> Settings:
    """Load process settings once per process."""
    return Settings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Load database settings once per process.

    Tests clear this cache to pick up patched environment variables.
    """
    return DatabaseSettings()


@lru_cache
def get_access_settings() -> AccessSettings:
    """Get cached access-control settings."""
    return AccessSettings()
