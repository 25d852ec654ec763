"""
Vault façade: provision, resolve, revoke and inspect proxy keys.

Composes the cipher, the record store and the rotation chain, gated by the
owner session of the current context. Real secrets enter through provision()
and leave only through resolve(); neither the secret nor the unlock key is
ever logged.
"""

from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..config import get_config
from ..constants import NotificationType
from ..context.operation_context import operation
from ..context.session_context import SessionAuthenticator, requires_unlocked
from ..db.db_credential_models import CredentialRecord
from ..enums import ResolutionStatus
from ..exceptions import (
    ChainTooLongError,
    ConflictError,
    CredentialNotFoundError,
    CredentialRevokedError,
    DecryptionError,
    ErrorCode,
    ForbiddenError,
    ValidationError,
)
from ..repositories.credential_record_repository import CredentialRecordRepository
from ..repositories.rotation_chain import RotationChain
from ..schemas.vault_schemas import (
    CredentialRecordRead,
    KeyCheckResult,
    ProvisionRequest,
    Resolution,
    RotationInfo,
    RotationSweepResult,
)
from ..utils.encryption_utils import CipherStore, EncryptedSecret
from ..utils.proxy_key_utils import mask_proxy_key
from .base_service import Clock, SessionService
from .notification_service import NotificationService
from .rotation_engine import RotationEngine


class VaultService(SessionService):
    """
    Service for owner-scoped credential storage and resolution.

    This service provides:
    - Provisioning of sealed secrets behind caller-supplied proxy keys
    - Resolution of current or stale proxy keys to the real secret
    - Revocation of whole rotation chains
    - Rotation status and scheduled sweeps (delegated to RotationEngine)
    """

    def __init__(
        self,
        session: Session,
        clock: Optional[Clock] = None,
        cipher: Optional[CipherStore] = None,
        rotation_engine: Optional[RotationEngine] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        """Initialize with SQLAlchemy session and optional collaborators."""
        super().__init__(session, clock)
        self.cipher = cipher or CipherStore()
        self.records = CredentialRecordRepository(session)
        self.chain = RotationChain(session)
        self.notifications = notification_service or NotificationService(session)
        self.rotation_engine = rotation_engine or RotationEngine(
            session, clock=self.clock, notification_service=self.notifications
        )

    @requires_unlocked
    @operation()
    def provision(
        self,
        proxy_id: str,
        real_secret: str,
        provider: str,
        rotation_interval_seconds: int = 0,
        webhook_url: Optional[str] = None,
    ) -> CredentialRecordRead:
        """
        Seal real_secret for the current owner under proxy_id.

        Args:
            proxy_id: Caller-supplied proxy key (must carry the configured prefix)
            real_secret: Upstream credential; never stored or logged in clear
            provider: Upstream provider name (normalized to lowercase)
            rotation_interval_seconds: 0 disables rotation
            webhook_url: Optional URL notified on rotation

        Returns:
            Non-secret view of the created record

        Raises:
            UnauthorizedError: If no owner session is active
            ValidationError: If any argument is invalid
            ConflictError: If proxy_id already exists (for any owner)
        """
        owner_id = SessionAuthenticator.require_owner()
        unlock_key = SessionAuthenticator.get_unlock_key()

        try:
            request = ProvisionRequest(
                proxy_id=proxy_id,
                real_secret=real_secret,
                provider=provider,
                rotation_interval_seconds=rotation_interval_seconds,
                webhook_url=webhook_url,
            )
        except PydanticValidationError as e:
            # pydantic's message echoes raw input, including the secret
            raise ValidationError(
                "Invalid provision request",
                error_code=ErrorCode.VALIDATION_FAILED,
                validation_errors=e.errors(
                    include_url=False, include_context=False, include_input=False
                ),
            ) from None

        if self.records.exists(request.proxy_id):
            self.session.rollback()
            raise ConflictError(proxy_id=mask_proxy_key(request.proxy_id))

        encrypted = self.cipher.encrypt(
            request.real_secret.get_secret_value(), unlock_key, owner_id
        )

        with self.transaction():
            record = self.records.create(
                proxy_id=request.proxy_id,
                owner_id=owner_id,
                encrypted=encrypted,
                provider=request.provider,
                rotation_interval_seconds=request.rotation_interval_seconds,
                last_rotated_at=self.clock(),
                webhook_url=request.webhook_url,
            )
            self.notifications.add(
                owner_id,
                NotificationType.KEY_PROVISIONED,
                f"{request.provider} Key Provisioned",
                f"A new {request.provider} API key was added to your vault.",
                {"provider": request.provider, "proxy_id": mask_proxy_key(request.proxy_id)},
            )
            result = CredentialRecordRead.model_validate(record)

        self.logger.info(
            "Provisioned proxy key",
            extra={
                "proxy_id": mask_proxy_key(request.proxy_id),
                "provider": request.provider,
                "rotation_interval_seconds": request.rotation_interval_seconds,
            },
        )
        return result

    @requires_unlocked
    @operation()
    def resolve(self, proxy_id: str) -> Resolution:
        """
        Resolve a current or stale proxy key to its real secret.

        Another owner's key resolves to NOT_FOUND, exactly like an unknown key.
        A key whose chain ends in a revoked key resolves to REVOKED. A stale key
        resolves to ROTATED with the current proxy key attached. A head that is
        due is rotated first when opportunistic rotation is enabled.

        Raises:
            UnauthorizedError: If no owner session is active
            ChainTooLongError: If the rotation chain is corrupted
        """
        owner_id = SessionAuthenticator.require_owner()
        unlock_key = SessionAuthenticator.get_unlock_key()

        record = self.records.get(proxy_id)
        if record is None or record.owner_id != owner_id:
            self.session.rollback()
            self.logger.debug(
                "Proxy key not resolvable for owner", extra={"proxy_id": mask_proxy_key(proxy_id)}
            )
            return Resolution.not_found()

        head_id = self.chain.follow(proxy_id)
        head = record if head_id == proxy_id else self.records.get(head_id)
        if head is None:
            self.session.rollback()
            return Resolution.not_found()
        if record.revoked or head.revoked:
            self.session.rollback()
            return Resolution.revoked()

        current_id = head_id
        if get_config().features.enable_opportunistic_rotation:
            current_id = self.rotation_engine.check_and_rotate(head_id) or head_id

        current = head if current_id == head_id else self.records.get(current_id)
        if current is None:
            self.session.rollback()
            return Resolution.not_found()
        if current.revoked:
            self.session.rollback()
            return Resolution.revoked()

        try:
            secret = self.cipher.decrypt(
                EncryptedSecret(current.ciphertext, current.nonce), unlock_key, owner_id
            )
        except DecryptionError:
            # Owner key mismatch: the session is no longer trustworthy
            SessionAuthenticator.clear_session()
            return Resolution.not_found()
        finally:
            self.session.rollback()

        if current_id != proxy_id:
            self.logger.info(
                "Resolved stale proxy key",
                extra={
                    "proxy_id": mask_proxy_key(proxy_id),
                    "current_proxy_id": mask_proxy_key(current_id),
                },
            )
            return Resolution.rotated(secret, current_id)
        return Resolution.resolved(secret)

    def resolve_secret(self, proxy_id: str) -> str:
        """
        Resolve proxy_id and return the real secret, raising on hard failures.

        Raises:
            UnauthorizedError: If no owner session is active
            CredentialNotFoundError: If the key is unknown, another owner's, or undecryptable
            CredentialRevokedError: If the key's chain ends in a revoked key
        """
        resolution = self.resolve(proxy_id)
        if resolution.status == ResolutionStatus.REVOKED:
            raise CredentialRevokedError(proxy_id=mask_proxy_key(proxy_id))
        if not resolution.ok:
            raise CredentialNotFoundError(proxy_id=mask_proxy_key(proxy_id))
        return resolution.secret_value()

    @requires_unlocked
    @operation()
    def revoke(self, proxy_id: str) -> None:
        """
        Revoke proxy_id and the current head of its chain. Idempotent.

        Every key in the chain then resolves to REVOKED.

        Raises:
            UnauthorizedError: If no owner session is active
            CredentialNotFoundError: If proxy_id is unknown
            ForbiddenError: If proxy_id belongs to another owner
        """
        owner_id = SessionAuthenticator.require_owner()

        record = self._get_owned_record(proxy_id, owner_id)
        newly_revoked = not record.revoked

        with self.transaction():
            self.records.mark_revoked(proxy_id)

        # Revoke under the head's lease; a rotation committed in between moves
        # the head forward, so keep going until the head has no successor.
        target = proxy_id
        max_hops = self.chain.max_hops
        for _ in range(max_hops + 1):
            head_id = self.chain.follow(target)
            with self.rotation_engine.leases.hold(head_id):
                head = self.records.get(head_id)
                newly_revoked = newly_revoked or (head is not None and not head.revoked)
                with self.transaction():
                    self.records.mark_revoked(head_id)
            if self.chain.successor(head_id) is None:
                break
            target = head_id
        else:
            raise ChainTooLongError(proxy_id=mask_proxy_key(proxy_id), max_hops=max_hops)

        if newly_revoked:
            with self.transaction():
                self.notifications.add(
                    owner_id,
                    NotificationType.KEY_REVOKED,
                    f"{record.provider} Key Revoked",
                    f"Your {record.provider} API key was revoked and can no longer be used.",
                    {"provider": record.provider, "proxy_id": mask_proxy_key(proxy_id)},
                )
            self.logger.info(
                "Revoked proxy key",
                extra={
                    "proxy_id": mask_proxy_key(proxy_id),
                    "head_proxy_id": mask_proxy_key(head_id),
                },
            )

    def key_count(self, owner_id: Optional[str] = None) -> int:
        """Count live keys, optionally for one owner."""
        count = self.records.count(owner_id)
        self.session.rollback()
        return count

    def has(self, proxy_id: str) -> bool:
        """True if proxy_id exists and belongs to the unlocked owner."""
        owner_id = SessionAuthenticator.get_owner()
        if owner_id is None:
            return False
        record = self.records.get(proxy_id)
        self.session.rollback()
        return record is not None and record.owner_id == owner_id

    @operation()
    def status(self, proxy_id: str) -> RotationInfo:
        """
        Rotation schedule of the current key in proxy_id's chain. Never rotates.

        Raises:
            CredentialNotFoundError: If proxy_id is unknown
            CredentialRevokedError: If the chain ends in a revoked key
        """
        if not self.records.exists(proxy_id):
            raise CredentialNotFoundError(proxy_id=mask_proxy_key(proxy_id))

        head = self.records.get(self.chain.follow(proxy_id))
        if head is None:
            raise CredentialNotFoundError(proxy_id=mask_proxy_key(proxy_id))
        if head.revoked:
            raise CredentialRevokedError(proxy_id=mask_proxy_key(proxy_id))

        info = self.rotation_engine.get_rotation_info(proxy_id)
        self.session.rollback()
        return info

    def sweep_rotations(self, cancel_event=None) -> RotationSweepResult:
        """Rotate every due key across all owners (scheduler entry point)."""
        return self.rotation_engine.rotate_expired_keys(cancel_event)

    @requires_unlocked
    @operation()
    def check_keys(self, proxy_ids: Iterable[str]) -> KeyCheckResult:
        """
        Report which of the owner's keys are still provisioned.

        Each presented key is followed to its live head, rotating it if due.
        Keys that are unknown, revoked or owned by someone else are reported as
        not provisioned.
        """
        owner_id = SessionAuthenticator.require_owner()
        result = KeyCheckResult()

        for proxy_id in proxy_ids:
            record = self.records.get(proxy_id)
            if record is None or record.owner_id != owner_id:
                result.provisioned[proxy_id] = False
                continue

            current_id = self.rotation_engine.find_current_key(proxy_id)
            if current_id is None:
                result.provisioned[proxy_id] = False
                continue

            result.provisioned[proxy_id] = True
            if current_id != proxy_id:
                result.key_updates[proxy_id] = current_id
            info = self.rotation_engine.get_rotation_info(current_id)
            if info is not None:
                result.rotation_info[current_id] = info

        self.session.rollback()
        return result

    def _get_owned_record(self, proxy_id: str, owner_id: str) -> CredentialRecord:
        record = self.records.get(proxy_id)
        if record is None:
            raise CredentialNotFoundError(proxy_id=mask_proxy_key(proxy_id))
        if record.owner_id != owner_id:
            raise ForbiddenError(proxy_id=mask_proxy_key(proxy_id))
        return record
