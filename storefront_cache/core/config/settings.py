#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

Type-safe, environment-based configuration for the storefront cache service.
Every tunable of the cache layer (TTLs, lock lease, L1 sizing, warmup
concurrency, admin token) is declared here so consumers never read the
environment directly.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with reload_settings()

Author: System Architect
Date: 2025-12-05
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis connection configuration.

    STAGE-0.1: Redis connection configuration
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_KEY_PREFIX: str = Field(default="kamba:", description="Prefix applied to every Redis key")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache behaviour configuration.

    STAGE-2: Cache TTL, lock and strategy tuning
    """

    CACHE_DEFAULT_TTL: int = Field(default=3600, description="Default entry TTL (1 hour)")
    CACHE_TAG_TTL_EXTENSION: int = Field(default=3600, description="Extra TTL granted to tag indexes")
    CACHE_COMPRESSION_THRESHOLD: int = Field(default=1000, description="Minimum payload size to compress")
    CACHE_LOCK_TTL: int = Field(default=30, description="Stampede lock lease in seconds")
    CACHE_LOCK_RETRY_MIN_DELAY: float = Field(default=0.1, description="Minimum lock retry backoff")
    CACHE_LOCK_RETRY_MAX_DELAY: float = Field(default=0.3, description="Maximum lock retry backoff")
    CACHE_LOCK_MAX_ATTEMPTS: int = Field(default=50, ge=1, description="Lock retries before fetching unprotected")
    CACHE_SORT_TAGS: bool = Field(default=True, description="Sort tags before building cache keys")
    CACHE_L1_MAX_SIZE: int = Field(default=1000, ge=1, description="L1 in-memory cache max entries")
    CACHE_L1_TTL: float = Field(default=60.0, description="L1 freshness window in seconds")
    CACHE_WRITE_BEHIND_INTERVAL: float = Field(default=5.0, description="Write-behind flush interval")
    CACHE_WARMUP_CONCURRENCY: int = Field(default=5, ge=1, description="Warmup batch size")
    CACHE_PATTERN_DELETE_BATCH: int = Field(default=100, ge=1, description="Keys per pattern delete round-trip")
    CACHE_API_TTL: int = Field(default=600, description="HTTP response cache TTL")
    CACHE_PAGE_TTL: int = Field(default=3600, description="Page cache header max-age")

    @model_validator(mode="after")
    def validate_lock_delays(self):
        """Lock retry window must not be inverted."""
        if self.CACHE_LOCK_RETRY_MIN_DELAY > self.CACHE_LOCK_RETRY_MAX_DELAY:
            raise ValueError("CACHE_LOCK_RETRY_MIN_DELAY must not exceed CACHE_LOCK_RETRY_MAX_DELAY")
        return self

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class SecuritySettings(BaseSettings):
    """
    Admin endpoint authorization.

    An unset CACHE_ADMIN_TOKEN refuses every invalidation and warmup request.
    """

    CACHE_ADMIN_TOKEN: str | None = Field(default=None, description="Bearer token for cache admin routes")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Storefront Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API server host")
    API_PORT: int = Field(default=8000, description="API server port")
    API_BASE_PATH: str = Field(default="/api", description="Prefix for admin routes")
    STOREFRONT_BASE_URL: str = Field(default="http://localhost:3000", description="Storefront origin for warmup")
    STOREFRONT_TIMEOUT: float = Field(default=10.0, description="Storefront request timeout")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        settings = get_settings()
        ttl = settings.cache.CACHE_DEFAULT_TTL
        token = settings.security.CACHE_ADMIN_TOKEN
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_KEY_PREFIX: str = Field(default="kamba:", description="Prefix applied to every Redis key")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    # Cache settings
    CACHE_DEFAULT_TTL: int = Field(default=3600, description="Default entry TTL (1 hour)")
    CACHE_TAG_TTL_EXTENSION: int = Field(default=3600, description="Extra TTL granted to tag indexes")
    CACHE_COMPRESSION_THRESHOLD: int = Field(default=1000, description="Minimum payload size to compress")
    CACHE_LOCK_TTL: int = Field(default=30, description="Stampede lock lease in seconds")
    CACHE_LOCK_RETRY_MIN_DELAY: float = Field(default=0.1, description="Minimum lock retry backoff")
    CACHE_LOCK_RETRY_MAX_DELAY: float = Field(default=0.3, description="Maximum lock retry backoff")
    CACHE_LOCK_MAX_ATTEMPTS: int = Field(default=50, ge=1, description="Lock retries before fetching unprotected")
    CACHE_SORT_TAGS: bool = Field(default=True, description="Sort tags before building cache keys")
    CACHE_L1_MAX_SIZE: int = Field(default=1000, ge=1, description="L1 in-memory cache max entries")
    CACHE_L1_TTL: float = Field(default=60.0, description="L1 freshness window in seconds")
    CACHE_WRITE_BEHIND_INTERVAL: float = Field(default=5.0, description="Write-behind flush interval")
    CACHE_WARMUP_CONCURRENCY: int = Field(default=5, ge=1, description="Warmup batch size")
    CACHE_PATTERN_DELETE_BATCH: int = Field(default=100, ge=1, description="Keys per pattern delete round-trip")
    CACHE_API_TTL: int = Field(default=600, description="HTTP response cache TTL")
    CACHE_PAGE_TTL: int = Field(default=3600, description="Page cache header max-age")

    # Security settings
    CACHE_ADMIN_TOKEN: str | None = Field(default=None, description="Bearer token for cache admin routes")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Storefront Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API server host")
    API_PORT: int = Field(default=8000, description="API server port")
    API_BASE_PATH: str = Field(default="/api", description="Prefix for admin routes")
    STOREFRONT_BASE_URL: str = Field(default="http://localhost:3000", description="Storefront origin for warmup")
    STOREFRONT_TIMEOUT: float = Field(default=10.0, description="Storefront request timeout")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_lock_delays(self):
        """Lock retry window must not be inverted."""
        if self.CACHE_LOCK_RETRY_MIN_DELAY > self.CACHE_LOCK_RETRY_MAX_DELAY:
            raise ValueError("CACHE_LOCK_RETRY_MIN_DELAY must not exceed CACHE_LOCK_RETRY_MAX_DELAY")
        return self

    # Nested configuration objects
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_KEY_PREFIX=self.REDIS_KEY_PREFIX,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache settings."""
        return CacheSettings(
            CACHE_DEFAULT_TTL=self.CACHE_DEFAULT_TTL,
            CACHE_TAG_TTL_EXTENSION=self.CACHE_TAG_TTL_EXTENSION,
            CACHE_COMPRESSION_THRESHOLD=self.CACHE_COMPRESSION_THRESHOLD,
            CACHE_LOCK_TTL=self.CACHE_LOCK_TTL,
            CACHE_LOCK_RETRY_MIN_DELAY=self.CACHE_LOCK_RETRY_MIN_DELAY,
            CACHE_LOCK_RETRY_MAX_DELAY=self.CACHE_LOCK_RETRY_MAX_DELAY,
            CACHE_LOCK_MAX_ATTEMPTS=self.CACHE_LOCK_MAX_ATTEMPTS,
            CACHE_SORT_TAGS=self.CACHE_SORT_TAGS,
            CACHE_L1_MAX_SIZE=self.CACHE_L1_MAX_SIZE,
            CACHE_L1_TTL=self.CACHE_L1_TTL,
            CACHE_WRITE_BEHIND_INTERVAL=self.CACHE_WRITE_BEHIND_INTERVAL,
            CACHE_WARMUP_CONCURRENCY=self.CACHE_WARMUP_CONCURRENCY,
            CACHE_PATTERN_DELETE_BATCH=self.CACHE_PATTERN_DELETE_BATCH,
            CACHE_API_TTL=self.CACHE_API_TTL,
            CACHE_PAGE_TTL=self.CACHE_PAGE_TTL
        )

    @property
    def security(self) -> 'SecuritySettings':
        """Get security settings."""
        return SecuritySettings(CACHE_ADMIN_TOKEN=self.CACHE_ADMIN_TOKEN)

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
            STOREFRONT_BASE_URL=self.STOREFRONT_BASE_URL,
            STOREFRONT_TIMEOUT=self.STOREFRONT_TIMEOUT,
            CORS_ORIGINS=self.CORS_ORIGINS
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (lazy singleton).

    STAGE-0.3: Settings initialization
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
