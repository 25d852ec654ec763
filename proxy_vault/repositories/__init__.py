"""Data access layer for the proxy vault."""

from .credential_record_repository import CredentialRecordRepository
from .rotation_chain import RotationChain

__all__ = [
    "CredentialRecordRepository",
    "RotationChain",
]
