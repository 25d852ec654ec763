"""
Constants and enums for the proxy vault.

This module centralizes all magic strings and constants used throughout
the vault to ensure consistency and maintainability.
"""

from enum import Enum


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    DATABASE_URL = "DATABASE_URL"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    PROXY_KEY_PREFIX = "VAULT_PROXY_KEY_PREFIX"
    SESSION_TTL_SECONDS = "VAULT_SESSION_TTL_SECONDS"
    WEBHOOK_TIMEOUT_SECONDS = "VAULT_WEBHOOK_TIMEOUT_SECONDS"
    ENABLE_WEBHOOKS = "VAULT_ENABLE_WEBHOOKS"


class QueueName(str, Enum):
    """Standard queue names."""

    LOGS = "logs-queue"


class NotificationType(str, Enum):
    """Owner notification types emitted by the vault."""

    KEY_PROVISIONED = "key_provisioned"
    KEY_ROTATED = "key_rotated"
    KEY_REVOKED = "key_revoked"
    INFO = "info"


class WebhookEvent(str, Enum):
    """Event names sent in webhook payloads."""

    KEY_ROTATED = "key_rotated"


# Proxy key format
PROXY_KEY_PREFIX = "priv_"
PROXY_KEY_RANDOM_BYTES = 16

# Owner unlock keys are raw 32-byte values (AES-256)
UNLOCK_KEY_LENGTH = 32

# Corruption guard for rotation chain traversal
MAX_CHAIN_HOPS = 64

# Rotation interval presets in seconds
ROTATION_INTERVALS = {
    "none": 0,
    "1min": 60,
    "5min": 300,
    "15min": 900,
    "30min": 1800,
    "1h": 3600,
    "12h": 43200,
    "24h": 86400,
    "7d": 604800,
    "30d": 2592000,
}

# Headers the proxy layer uses to carry the owner session
ENCLAVE_KEY_HEADER = "x-enclave-key"
ENCLAVE_OWNER_HEADER = "x-enclave-owner"
