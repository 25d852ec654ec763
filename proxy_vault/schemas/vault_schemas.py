"""
Pydantic schemas for the vault API surface.

Real secrets only ever appear as SecretStr so that repr(), logging and
model_dump() never print them.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from ..config import get_config
from ..constants import WebhookEvent
from ..enums import ResolutionStatus


class BaseVaultSchema(BaseModel):
    """Base schema for vault request models."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="forbid",  # Don't allow extra fields
    )


class ProvisionRequest(BaseVaultSchema):
    """Validated input for VaultService.provision()."""

    proxy_id: str = Field(..., min_length=1, max_length=100, description="Proxy key to register")
    real_secret: SecretStr = Field(..., description="Upstream credential to seal")
    provider: str = Field(..., min_length=1, max_length=50, description="Upstream provider name")
    rotation_interval_seconds: int = Field(
        default=0, ge=0, description="Rotation interval; 0 disables rotation"
    )
    webhook_url: Optional[str] = Field(None, max_length=2048, description="Rotation webhook")

    @field_validator("proxy_id")
    @classmethod
    def validate_proxy_id(cls, v):
        """Proxy keys must carry the configured prefix."""
        prefix = get_config().vault.proxy_key_prefix
        if not v.startswith(prefix) or len(v) <= len(prefix):
            raise ValueError(f"proxy_id must start with '{prefix}'")
        return v

    @field_validator("real_secret")
    @classmethod
    def validate_real_secret(cls, v):
        """Strip surrounding whitespace and reject empty secrets."""
        stripped = v.get_secret_value().strip()
        if not stripped:
            raise ValueError("real_secret cannot be empty")
        return SecretStr(stripped)

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v):
        return v.lower()

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v):
        """Only http(s) webhooks are accepted; empty means none."""
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("webhook_url must be an http(s) URL")
        return v


class CredentialRecordRead(BaseModel):
    """Non-secret view of a stored credential record."""

    model_config = ConfigDict(from_attributes=True)

    proxy_id: str
    owner_id: str
    provider: str
    rotation_interval_seconds: int
    last_rotated_at: int
    webhook_url: Optional[str] = None
    revoked: bool
    superseded: bool


class Resolution(BaseModel):
    """
    Outcome of resolving a proxy key.

    RESOLVED carries the secret; ROTATED carries the secret and the current
    proxy key; REVOKED and NOT_FOUND carry nothing.
    """

    model_config = ConfigDict(frozen=True)

    status: ResolutionStatus
    secret: Optional[SecretStr] = None
    current_proxy_id: Optional[str] = None

    @classmethod
    def resolved(cls, secret: str) -> "Resolution":
        return cls(status=ResolutionStatus.RESOLVED, secret=SecretStr(secret))

    @classmethod
    def rotated(cls, secret: str, current_proxy_id: str) -> "Resolution":
        return cls(
            status=ResolutionStatus.ROTATED,
            secret=SecretStr(secret),
            current_proxy_id=current_proxy_id,
        )

    @classmethod
    def revoked(cls) -> "Resolution":
        return cls(status=ResolutionStatus.REVOKED)

    @classmethod
    def not_found(cls) -> "Resolution":
        return cls(status=ResolutionStatus.NOT_FOUND)

    @property
    def ok(self) -> bool:
        return self.status in (ResolutionStatus.RESOLVED, ResolutionStatus.ROTATED)

    def secret_value(self) -> Optional[str]:
        return self.secret.get_secret_value() if self.secret is not None else None


class RotationInfo(BaseModel):
    """Rotation schedule of the current key in a chain."""

    interval_seconds: int
    seconds_until_next_rotation: int


class RotationSweepResult(BaseModel):
    """Summary of one rotate_expired_keys() pass."""

    rotated: int = 0
    failed: int = 0
    cancelled: bool = False
    keys: Dict[str, str] = Field(default_factory=dict, description="old proxy key -> new proxy key")


class KeyCheckResult(BaseModel):
    """Answer to a batch "are these keys still provisioned" query."""

    provisioned: Dict[str, bool] = Field(default_factory=dict)
    rotation_info: Dict[str, RotationInfo] = Field(default_factory=dict)
    key_updates: Dict[str, str] = Field(
        default_factory=dict, description="presented proxy key -> current proxy key"
    )


class WebhookPayload(BaseModel):
    """Body POSTed to a credential's webhook after rotation."""

    model_config = ConfigDict(populate_by_name=True)

    event: WebhookEvent = WebhookEvent.KEY_ROTATED
    old_proxy_id: str = Field(..., serialization_alias="oldProxyId")
    new_proxy_id: str = Field(..., serialization_alias="newProxyId")
    provider: str
    rotated_at: int = Field(..., serialization_alias="rotatedAt")
    next_rotation: int = Field(..., serialization_alias="nextRotation")

    def to_json_dict(self) -> Dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


class NotificationRead(BaseModel):
    """Owner notification as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    type: str
    title: str
    message: str
    context: Optional[Dict[str, object]] = None
    read: bool

