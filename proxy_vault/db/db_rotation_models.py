"""
Rotation link model.

Each row is one edge old -> new in a rotation chain. The primary key on
from_proxy_id means a record can have at most one successor.

head_proxy_id is the newest key of the chain and is rewritten on every
rotation, so any superseded key reaches the live key in a single hop no
matter how many times the chain has rotated.
"""

from sqlalchemy import BigInteger, Column, ForeignKey, Index, String

from .db_config import Base


class RotationLink(Base):
    """Edge from a superseded proxy key to the key that replaced it."""

    __tablename__ = "rotation_links"

    from_proxy_id = Column(
        String(100), ForeignKey("credential_records.proxy_id"), primary_key=True
    )
    to_proxy_id = Column(
        String(100), ForeignKey("credential_records.proxy_id"), nullable=False, unique=True
    )
    head_proxy_id = Column(
        String(100), ForeignKey("credential_records.proxy_id"), nullable=False
    )
    rotated_at = Column(BigInteger, nullable=False)  # epoch ms

    __table_args__ = (Index("ix_rotation_links_head", "head_proxy_id"),)
