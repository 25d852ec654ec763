"""
Repository for sealed credential records.

Plain storage: no decryption, no ownership checks, no rotation policy. The only
conditional write is compare_and_supersede(), the primitive that makes a
rotation happen at most once per record.
"""

from typing import Any, List, NoReturn, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.db_base import utc_now
from ..db.db_credential_models import CredentialRecord
from ..exceptions import BaseError, ConflictError, ErrorCode, RepositoryError
from ..utils.encryption_utils import EncryptedSecret
from ..utils.logger import get_logger
from ..utils.proxy_key_utils import mask_proxy_key


class CredentialRecordRepository:
    """Data access for CredentialRecord rows."""

    def __init__(self, session: Session):
        self.session = session
        self.logger = get_logger()

    def _handle_db_error(
        self, e: Exception, operation_name: str, proxy_id: Optional[str] = None, **context: Any
    ) -> NoReturn:
        """
        Map database exceptions onto vault errors.

        Raises:
            ConflictError: On a primary key violation
            RepositoryError: For any other database failure
        """
        if isinstance(e, BaseError):
            raise e

        error_context = {"operation_name": operation_name, **context}
        if proxy_id:
            error_context["proxy_id"] = mask_proxy_key(proxy_id)

        if isinstance(e, IntegrityError):
            self.session.rollback()
            raise ConflictError(cause=e, **error_context) from e

        self.logger.error(
            f"Database error in {operation_name}",
            extra={**error_context, "error_type": type(e).__name__},
        )
        raise RepositoryError(
            f"Database error in {operation_name}",
            error_code=ErrorCode.DATABASE_ERROR,
            cause=e,
            **error_context,
        ) from e

    def create(
        self,
        proxy_id: str,
        owner_id: str,
        encrypted: EncryptedSecret,
        provider: str,
        rotation_interval_seconds: int,
        last_rotated_at: int,
        webhook_url: Optional[str] = None,
    ) -> CredentialRecord:
        """
        Insert a new record (flushed, not committed).

        Raises:
            ConflictError: If proxy_id already exists
        """
        record = CredentialRecord(
            proxy_id=proxy_id,
            owner_id=owner_id,
            ciphertext=encrypted.ciphertext,
            nonce=encrypted.nonce,
            provider=provider,
            rotation_interval_seconds=rotation_interval_seconds,
            last_rotated_at=last_rotated_at,
            webhook_url=webhook_url,
            revoked=False,
            superseded=False,
        )
        try:
            self.session.add(record)
            self.session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "create", proxy_id, provider=provider)

        self.logger.debug(
            "Credential record created",
            extra={"proxy_id": mask_proxy_key(proxy_id), "provider": provider},
        )
        return record

    def get(self, proxy_id: str) -> Optional[CredentialRecord]:
        """Fetch a record, always reloading from the database."""
        try:
            return self.session.get(CredentialRecord, proxy_id, populate_existing=True)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get", proxy_id)

    def exists(self, proxy_id: str) -> bool:
        try:
            stmt = select(CredentialRecord.proxy_id).where(CredentialRecord.proxy_id == proxy_id)
            return self.session.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            self._handle_db_error(e, "exists", proxy_id)

    def mark_revoked(self, proxy_id: str) -> bool:
        """
        Flag a record revoked. Idempotent.

        Returns:
            True if the record exists
        """
        try:
            result = self.session.execute(
                update(CredentialRecord)
                .where(CredentialRecord.proxy_id == proxy_id)
                .values(revoked=True, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self._handle_db_error(e, "mark_revoked", proxy_id)
        return result.rowcount > 0

    def count(self, owner_id: Optional[str] = None) -> int:
        """Count live (not revoked, not superseded) records, optionally for one owner."""
        stmt = select(func.count(CredentialRecord.proxy_id)).where(
            and_(CredentialRecord.revoked.is_(False), CredentialRecord.superseded.is_(False))
        )
        if owner_id is not None:
            stmt = stmt.where(CredentialRecord.owner_id == owner_id)
        try:
            return self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "count", owner_id=owner_id)

    def list_rotation_candidates(
        self, now_ms: int, limit: Optional[int] = None, after: Optional[str] = None
    ) -> List[str]:
        """
        Return ids of live records whose rotation interval has elapsed.

        Ordered by proxy_id; pass the last id seen as `after` to page.
        """
        due_at = CredentialRecord.last_rotated_at + CredentialRecord.rotation_interval_seconds * 1000
        stmt = (
            select(CredentialRecord.proxy_id)
            .where(
                and_(
                    CredentialRecord.revoked.is_(False),
                    CredentialRecord.superseded.is_(False),
                    CredentialRecord.rotation_interval_seconds > 0,
                    due_at <= now_ms,
                )
            )
            .order_by(CredentialRecord.proxy_id)
        )
        if after is not None:
            stmt = stmt.where(CredentialRecord.proxy_id > after)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            return list(self.session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "list_rotation_candidates", now_ms=now_ms)

    def compare_and_supersede(self, proxy_id: str, expected_last_rotated_at: int) -> bool:
        """
        Atomically flag a live record superseded if it is still in the expected state.

        Returns:
            True if this caller won; False if the record was already superseded,
            revoked, or rotated since it was read
        """
        try:
            result = self.session.execute(
                update(CredentialRecord)
                .where(
                    and_(
                        CredentialRecord.proxy_id == proxy_id,
                        CredentialRecord.superseded.is_(False),
                        CredentialRecord.revoked.is_(False),
                        CredentialRecord.last_rotated_at == expected_last_rotated_at,
                    )
                )
                .values(superseded=True, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self._handle_db_error(e, "compare_and_supersede", proxy_id)

        won = result.rowcount == 1
        if not won:
            self.logger.debug(
                "Supersede lost: record changed since read",
                extra={"proxy_id": mask_proxy_key(proxy_id)},
            )
        return won
