"""
Centralized configuration management for the proxy vault.

This module provides a unified configuration system with support for:
- Environment variables
- Feature flags
- Vault tuning (session TTL, chain limits, webhook timeouts)
- Validation using Pydantic
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import MAX_CHAIN_HOPS, PROXY_KEY_PREFIX, EnvironmentVariable, LogLevel


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.DATABASE_URL.value, "sqlite:///./proxy_vault.db"
        ),
        description="Database connection string",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL statements")


class QueueConfig(BaseModel):
    """Queue configuration for shipping structured logs to Azure Storage Queues."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AZURE_STORAGE_CONNECTION.value, ""),
        description="Azure Storage connection string",
    )
    logs_queue_name: str = Field(default="logs-queue", description="Logs queue name")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class FeatureFlags(BaseModel):
    """Feature flags for controlling vault behavior."""

    enable_logs_queue: bool = Field(default=False, description="Ship logs to an Azure queue")
    enable_webhooks: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ENABLE_WEBHOOKS.value, "true").lower()
        == "true",
        description="POST rotation events to credential webhooks",
    )
    enable_notifications: bool = Field(
        default=True, description="Record owner notifications for key lifecycle events"
    )
    enable_opportunistic_rotation: bool = Field(
        default=True, description="Rotate due credentials lazily when they are resolved"
    )


class VaultSettings(BaseModel):
    """Tuning for the credential vault and rotation engine."""

    proxy_key_prefix: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.PROXY_KEY_PREFIX.value, PROXY_KEY_PREFIX
        ),
        description="Required prefix of every proxy key",
    )
    max_chain_hops: int = Field(
        default=MAX_CHAIN_HOPS, ge=1, description="Maximum rotation chain traversal"
    )
    session_ttl_seconds: int = Field(
        default_factory=lambda: int(
            os.getenv(EnvironmentVariable.SESSION_TTL_SECONDS.value, "3600")
        ),
        ge=1,
        description="Lifetime of an unlocked owner session",
    )
    webhook_timeout_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv(EnvironmentVariable.WEBHOOK_TIMEOUT_SECONDS.value, "5")
        ),
        gt=0,
        description="Timeout for best-effort webhook delivery",
    )
    sweep_batch_size: int = Field(
        default=100, ge=1, description="Candidates fetched per rotation sweep page"
    )
    webhook_workers: int = Field(
        default=4, ge=1, description="Background threads delivering rotation webhooks"
    )

    @field_validator("proxy_key_prefix")
    def validate_prefix(cls, v: str) -> str:
        """Prefix must be non-empty and contain no whitespace."""
        if not v or v != v.strip():
            raise ValueError("proxy_key_prefix must be a non-empty string without whitespace")
        return v


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true",
        description="Debug mode",
    )

    # Sub-configurations
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    queue: QueueConfig = Field(default_factory=QueueConfig, description="Queue configuration")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    features: FeatureFlags = Field(default_factory=FeatureFlags, description="Feature flags")
    vault: VaultSettings = Field(default_factory=VaultSettings, description="Vault settings")

    # Custom configuration
    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)

    def set_custom(self, key: str, value: Any) -> None:
        """Set a custom configuration value."""
        self.custom[key] = value


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
