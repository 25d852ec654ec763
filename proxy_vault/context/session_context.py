"""
Owner session management for the credential vault.

An owner session pairs an owner identifier with the ephemeral unlock key the
owner supplied for the current request. Sessions live in a ContextVar, so each
thread, asyncio task or request context sees only its own session; nothing is
shared process-wide and nothing is ever persisted.

IMPORTANT: the unlock key is held as pydantic SecretBytes and must never be
logged, persisted or placed in exception context.
"""

import time
from contextlib import contextmanager
from contextvars import ContextVar, Token
from functools import wraps
from typing import Any, Callable, Generator, Optional, Union

from pydantic import BaseModel, ConfigDict, SecretBytes

from ..config import get_config
from ..constants import UNLOCK_KEY_LENGTH
from ..exceptions import ErrorCode, UnauthorizedError, ValidationError
from ..utils.logger import get_logger


class OwnerSession(BaseModel):
    """An unlocked owner and the key material supplied with the request."""

    model_config = ConfigDict(frozen=True)

    owner_id: str
    unlock_key: SecretBytes
    expires_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.monotonic()) >= self.expires_at


_current_session: ContextVar[Optional[OwnerSession]] = ContextVar(
    "proxy_vault_owner_session", default=None
)


def normalize_unlock_key(unlock_key: Union[bytes, str]) -> bytes:
    """
    Accept a raw 32-byte key or its 64-character hex form.

    Raises:
        ValidationError: If the key has the wrong type or length
    """
    if isinstance(unlock_key, str):
        try:
            unlock_key = bytes.fromhex(unlock_key.strip().removeprefix("0x"))
        except ValueError as e:
            raise ValidationError(
                "unlock_key must be raw bytes or a hex string",
                field="unlock_key",
                error_code=ErrorCode.INVALID_FORMAT,
                cause=e,
            ) from e

    if not isinstance(unlock_key, (bytes, bytearray)) or len(unlock_key) != UNLOCK_KEY_LENGTH:
        raise ValidationError(
            f"unlock_key must be exactly {UNLOCK_KEY_LENGTH} bytes",
            field="unlock_key",
            error_code=ErrorCode.INVALID_FORMAT,
        )
    return bytes(unlock_key)


class SessionAuthenticator:
    """
    Gate that answers "is this owner's vault currently operable".

    No cryptographic work happens here.
    """

    _logger = get_logger()

    @classmethod
    def set_session_key(
        cls,
        owner_id: str,
        unlock_key: Union[bytes, str],
        ttl_seconds: Optional[int] = None,
    ) -> Token:
        """
        Unlock the vault for owner_id in the current context.

        Args:
            owner_id: Wallet address or account identifier
            unlock_key: 32-byte owner key (raw or hex)
            ttl_seconds: Session lifetime; defaults to config.vault.session_ttl_seconds

        Returns:
            ContextVar token that can be passed to reset_session()
        """
        if not owner_id or not isinstance(owner_id, str) or not owner_id.strip():
            raise ValidationError(
                "owner_id must be a non-empty string",
                error_code=ErrorCode.MISSING_REQUIRED,
                field="owner_id",
            )

        ttl = ttl_seconds if ttl_seconds is not None else get_config().vault.session_ttl_seconds
        session = OwnerSession(
            owner_id=owner_id.strip(),
            unlock_key=SecretBytes(normalize_unlock_key(unlock_key)),
            expires_at=time.monotonic() + ttl,
        )
        token = _current_session.set(session)
        cls._logger.debug("Owner session unlocked", extra={"owner_id": session.owner_id})
        return token

    @classmethod
    def _active_session(cls) -> Optional[OwnerSession]:
        session = _current_session.get()
        if session is None:
            return None
        if session.is_expired():
            _current_session.set(None)
            cls._logger.debug("Owner session expired", extra={"owner_id": session.owner_id})
            return None
        return session

    @classmethod
    def is_unlocked(cls) -> bool:
        return cls._active_session() is not None

    @classmethod
    def get_owner(cls) -> Optional[str]:
        session = cls._active_session()
        return session.owner_id if session else None

    @classmethod
    def get_unlock_key(cls) -> bytes:
        """
        Return the active owner's unlock key.

        Raises:
            UnauthorizedError: If no unexpired session is active
        """
        session = cls._active_session()
        if session is None:
            raise UnauthorizedError()
        return session.unlock_key.get_secret_value()

    @classmethod
    def require_owner(cls) -> str:
        """Return the active owner or raise UnauthorizedError."""
        owner_id = cls.get_owner()
        if owner_id is None:
            raise UnauthorizedError()
        return owner_id

    @classmethod
    def clear_session(cls) -> None:
        """Lock the vault for the current context (logout or key mismatch)."""
        session = _current_session.get()
        _current_session.set(None)
        if session is not None:
            cls._logger.debug("Owner session cleared", extra={"owner_id": session.owner_id})

    @classmethod
    def reset_session(cls, token: Token) -> None:
        """Restore whatever session was active before set_session_key()."""
        _current_session.reset(token)


@contextmanager
def owner_session(
    owner_id: str, unlock_key: Union[bytes, str], ttl_seconds: Optional[int] = None
) -> Generator[None, None, None]:
    """
    Context manager for owner-scoped vault operations.

    Unlocks the vault for the duration of the block and restores the previous
    session afterward.
    """
    token = SessionAuthenticator.set_session_key(owner_id, unlock_key, ttl_seconds)
    try:
        yield
    finally:
        SessionAuthenticator.reset_session(token)


def requires_unlocked(func: Callable) -> Callable:
    """Fail closed with UnauthorizedError unless an owner session is active."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not SessionAuthenticator.is_unlocked():
            raise UnauthorizedError(operation=func.__name__)
        return func(*args, **kwargs)

    return wrapper
