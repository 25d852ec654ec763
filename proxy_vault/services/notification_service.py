"""
Owner notifications for key lifecycle events.

Notifications are informational only. They never contain a real secret, and a
failure to record one never fails the vault operation that emitted it.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_config
from ..constants import NotificationType
from ..context.operation_context import operation
from ..db.db_notification_models import Notification
from ..exceptions import ErrorCode, RepositoryError
from ..schemas.vault_schemas import NotificationRead
from ..utils.logger import get_logger


class NotificationService:
    """Store and list owner notifications."""

    def __init__(self, session: Session):
        self.session = session
        self.logger = get_logger()

    @operation()
    def add(
        self,
        owner_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[NotificationRead]:
        """
        Record a notification (flushed, committed by the caller).

        Returns None when notifications are disabled.
        """
        if not get_config().features.enable_notifications:
            return None

        notification = Notification(
            owner_id=owner_id,
            type=NotificationType(notification_type).value,
            title=title,
            message=message,
            context=context or {},
            read=False,
        )
        try:
            self.session.add(notification)
            self.session.flush()
        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to record notification",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                notification_type=notification.type,
            ) from e

        self.logger.debug(
            "Notification recorded",
            extra={"owner_id": owner_id, "notification_type": notification.type},
        )
        return NotificationRead.model_validate(notification)

    def list_for_owner(
        self, owner_id: str, unread_only: bool = False, limit: int = 50
    ) -> List[NotificationRead]:
        """Newest first."""
        stmt = select(Notification).where(Notification.owner_id == owner_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
        rows = self.session.execute(stmt).scalars().all()
        return [NotificationRead.model_validate(row) for row in rows]

    def mark_read(self, notification_id: str, owner_id: Optional[str] = None) -> bool:
        """Mark one notification read; scoped to owner_id when given."""
        stmt = update(Notification).where(Notification.id == notification_id)
        if owner_id is not None:
            stmt = stmt.where(Notification.owner_id == owner_id)
        result = self.session.execute(
            stmt.values(read=True).execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
