"""Pydantic schemas for the proxy vault."""

from .vault_schemas import (
    CredentialRecordRead,
    KeyCheckResult,
    NotificationRead,
    ProvisionRequest,
    Resolution,
    RotationInfo,
    RotationSweepResult,
    WebhookPayload,
)

__all__ = [
    "CredentialRecordRead",
    "KeyCheckResult",
    "NotificationRead",
    "ProvisionRequest",
    "Resolution",
    "RotationInfo",
    "RotationSweepResult",
    "WebhookPayload",
]
