"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for all application settings,
loaded from environment variables with sensible defaults.

Usage:
    from meetgrid.config import get_settings
    settings = get_settings()
    ttl = settings.session.ttl_hours
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SESSION_SECRET = "change-me"


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes")
    return bool(v)


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = Field(default="redis", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str = Field(default="", description="Redis password")
    db: int = Field(default=0, description="Redis database index")
    max_connections: int = Field(default=50, description="Maximum pool connections")
    pool_timeout_sec: float = Field(default=5.0, description="Pool timeout in seconds")
    socket_timeout: float = Field(default=5.0, description="Socket timeout in seconds")
    key_prefix: str = Field(default="meetgrid", description="Namespace for event keys")


class PostgresSettings(BaseSettings):
    """PostgreSQL connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field(default="postgres", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="meetgrid", description="PostgreSQL user")
    password: str = Field(default="", description="PostgreSQL password")
    database: str = Field(
        default="meetgrid",
        validation_alias="POSTGRES_DB",
        description="Database name",
    )
    pool_min_size: int = Field(default=1, description="Minimum pool size")
    pool_max_size: int = Field(default=10, description="Maximum pool size")
    pool_timeout: int = Field(default=30, description="Timeout for acquiring connections")

    def get_dsn(self) -> str:
        """Generate PostgreSQL DSN connection string."""
        return (
            f"host={self.host} port={self.port} user={self.user} "
            f"password={self.password} dbname={self.database} sslmode=disable"
        )


class StorageSettings(BaseSettings):
    """Which event store backs the API."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")

    backend: Literal["redis", "postgres"] = Field(default="redis")
    max_update_attempts: int = Field(
        default=5, description="Optimistic transaction attempts before giving up"
    )


class SessionSettings(BaseSettings):
    """Signed session credential configuration."""

    model_config = SettingsConfigDict(env_prefix="SESSION_", extra="ignore")

    secret: str = Field(default=DEFAULT_SESSION_SECRET, description="HMAC signing key")
    ttl_hours: int = Field(default=24, description="Credential lifetime")
    cookie_prefix: str = Field(default="auth_token_", description="Cookie name prefix")
    cookie_secure: bool = Field(default=False, description="Mark cookies Secure")
    cookie_samesite: Literal["lax", "strict", "none"] = Field(default="lax")
    password_iterations: int = Field(default=100_000, description="PBKDF2 iterations")

    @field_validator("cookie_secure", mode="before")
    @classmethod
    def parse_secure(cls, v):
        return _parse_bool(v)

    @property
    def ttl_seconds(self) -> int:
        return self.ttl_hours * 60 * 60


class AutosaveSettings(BaseSettings):
    """Client-side write coalescing."""

    model_config = SettingsConfigDict(env_prefix="AUTOSAVE_", extra="ignore")

    debounce_sec: float = Field(default=1.0, description="Coalescing window")


class CorsSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_raw: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    @property
    def origins(self) -> list[str]:
        """Parse comma-separated origins into list."""
        return [o.strip() for o in self.origins_raw.split(",") if o.strip()]

    @property
    def allow_credentials(self) -> bool:
        """Credentials not allowed with wildcard origins."""
        return self.origins != ["*"]


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    request: bool = Field(default=False, alias="request_debug")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class FeatureSettings(BaseSettings):
    """Feature flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    metrics: bool = Field(default=False, alias="enable_metrics")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class Settings:
    """Main application settings combining all configuration sections.

    This is not a BaseSettings subclass to avoid env var conflicts.
    Each subsetting is loaded independently with its own prefix.
    """

    def __init__(self) -> None:
        self.redis = RedisSettings()
        self.postgres = PostgresSettings()
        self.storage = StorageSettings()
        self.session = SessionSettings()
        self.autosave = AutosaveSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()
        self.features = FeatureSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()
