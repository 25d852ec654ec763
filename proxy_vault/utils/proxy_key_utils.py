"""Proxy key generation, format checks and log masking."""

import secrets
from typing import Optional

from ..config import get_config
from ..constants import PROXY_KEY_RANDOM_BYTES
from ..exceptions import ErrorCode, ValidationError


def generate_proxy_key(prefix: Optional[str] = None) -> str:
    """Return a fresh proxy key: prefix + 32 lowercase hex characters."""
    prefix = prefix or get_config().vault.proxy_key_prefix
    return f"{prefix}{secrets.token_hex(PROXY_KEY_RANDOM_BYTES)}"


def is_proxy_key(value: Optional[str], prefix: Optional[str] = None) -> bool:
    prefix = prefix or get_config().vault.proxy_key_prefix
    return isinstance(value, str) and value.startswith(prefix) and len(value) > len(prefix)


def validate_proxy_key(value: Optional[str], prefix: Optional[str] = None) -> str:
    """
    Check that value looks like a proxy key and return it stripped.

    Raises:
        ValidationError: If value is empty or lacks the configured prefix
    """
    prefix = prefix or get_config().vault.proxy_key_prefix
    candidate = value.strip() if isinstance(value, str) else value
    if not is_proxy_key(candidate, prefix):
        raise ValidationError(
            f"Invalid proxy key format: must start with '{prefix}'",
            error_code=ErrorCode.INVALID_FORMAT,
            field="proxy_id",
            value=mask_proxy_key(candidate),
        )
    return candidate


def mask_proxy_key(value: Optional[str]) -> str:
    """
    Mask a proxy key for logging: first 12 characters, '...', last 4.

    Keys shorter than 16 characters are replaced entirely.
    """
    if not value or not isinstance(value, str) or len(value) < 16:
        return "priv_***"
    return f"{value[:12]}...{value[-4:]}"
