"""Context management for operations and owner sessions."""

from .operation_context import OperationContext, operation
from .session_context import (
    OwnerSession,
    SessionAuthenticator,
    owner_session,
    requires_unlocked,
)

__all__ = [
    "operation",
    "OperationContext",
    "OwnerSession",
    "SessionAuthenticator",
    "owner_session",
    "requires_unlocked",
]
