"""Utility modules for the proxy vault."""

# Encryption utilities
from .encryption_utils import (
    CipherStore,
    EncryptedSecret,
    decrypt_secret,
    derive_owner_key,
    encrypt_secret,
)

# Logging utilities
from .logger import (
    AzureQueueHandler,
    ContextAwareLogger,
    configure_logging,
    get_logger,
)

# Provider routing
from .provider_routes import ProviderRoute, build_target_url, get_provider_route

# Proxy key helpers
from .proxy_key_utils import (
    generate_proxy_key,
    is_proxy_key,
    mask_proxy_key,
    validate_proxy_key,
)
from .webhook_utils import send_webhook

__all__ = [
    # Encryption utilities
    "CipherStore",
    "EncryptedSecret",
    "decrypt_secret",
    "derive_owner_key",
    "encrypt_secret",
    # Logging utilities
    "AzureQueueHandler",
    "ContextAwareLogger",
    "configure_logging",
    "get_logger",
    # Provider routing
    "ProviderRoute",
    "build_target_url",
    "get_provider_route",
    # Proxy key helpers
    "generate_proxy_key",
    "is_proxy_key",
    "mask_proxy_key",
    "validate_proxy_key",
    # Webhooks
    "send_webhook",
]
