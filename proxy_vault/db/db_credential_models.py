"""
Credential record model.

Just the data structure - no business logic or class methods.
"""

from sqlalchemy import BigInteger, Boolean, Column, Index, Integer, LargeBinary, String

from .db_base import TimestampMixin
from .db_config import Base


class CredentialRecord(Base, TimestampMixin):
    """One sealed upstream secret, addressed by its proxy key."""

    __tablename__ = "credential_records"

    proxy_id = Column(String(100), primary_key=True)
    owner_id = Column(String(255), nullable=False, index=True)

    # AES-GCM output (tag appended) and its 96-bit nonce
    ciphertext = Column(LargeBinary, nullable=False)
    nonce = Column(LargeBinary(12), nullable=False)

    provider = Column(String(50), nullable=False)
    rotation_interval_seconds = Column(Integer, nullable=False, default=0)
    last_rotated_at = Column(BigInteger, nullable=False)  # epoch ms
    webhook_url = Column(String(2048), nullable=True)

    revoked = Column(Boolean, nullable=False, default=False)
    superseded = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index(
            "ix_credential_rotation_candidates",
            "revoked",
            "superseded",
            "rotation_interval_seconds",
        ),
    )
