"""
Application configuration module using Pydantic Settings.

This module provides centralized configuration for the notification subsystem,
including toast queue limits, subscription retry policy, cache backend and
store connection settings.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    Settings are loaded from environment variables with fallback to .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode flag",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON instead of console output",
    )
    app_name: str = Field(
        default="Tours",
        description="Product name used in notification copy",
    )

    # Toast Queue
    toast_capacity: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum number of toasts shown at once",
    )
    toast_duration_ms: int = Field(
        default=5000,
        ge=500,
        le=60000,
        description="Default auto-dismiss delay for toasts in milliseconds",
    )

    # Durable Notification List
    durable_list_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum durable notifications kept in memory per session",
    )
    list_recent_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Records fetched from the store on session start",
    )

    # Subscription Retry Policy
    subscription_retry_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Resubscribe attempts after a live subscription failure",
    )
    subscription_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Base delay for exponential resubscribe backoff",
    )

    # Local Cache Configuration
    cache_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Backend for the last-known durable list cache",
    )
    redis_host: str = Field(
        default="localhost",
        description="Redis server hostname",
    )
    redis_port: int = Field(
        default=6379,
        ge=1,
        le=65535,
        description="Redis server port",
    )
    redis_db: int = Field(
        default=0,
        ge=0,
        description="Redis database index",
    )
    cache_key_prefix: str = Field(
        default="notifications",
        description="Key prefix for cached notification lists",
    )
    cache_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        ge=60,
        description="TTL for cached notification lists",
    )

    # Store Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./notifications.db",
        description="SQLAlchemy async connection string for the notification store",
    )
    db_echo: bool = Field(
        default=False,
        description="Echo SQL statements to logs (useful for debugging)",
    )
    store_poll_interval_seconds: float = Field(
        default=2.0,
        ge=0.05,
        le=300.0,
        description="Polling interval for SQL store subscriptions",
    )
    store_snapshot_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Records watched per owner by store subscriptions",
    )


# Global settings instance
settings = Settings()
