"""
Owner notification model.

Just the data structure - no business logic or class methods.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text

from .db_base import JSON, utc_now
from .db_config import Base


class Notification(Base):
    """Key lifecycle notice shown to an owner. Never carries a real secret."""

    __tablename__ = "vault_notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    context = Column(JSON, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (Index("ix_notification_owner_created", "owner_id", "created_at"),)
