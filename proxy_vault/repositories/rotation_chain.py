"""
Rotation chain: old proxy key -> new proxy key edges.

Chains form a forest of simple paths. Each link keeps its direct successor
for history and the chain head for lookups; linking a new key moves every
ancestor's head forward in the same flush. Traversal is still bounded so a
corrupted (cyclic or hand-edited) chain surfaces as ChainTooLongError
instead of a hang.
"""

from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_config
from ..db.db_rotation_models import RotationLink
from ..exceptions import ChainTooLongError, ErrorCode, RepositoryError
from ..utils.logger import get_logger
from ..utils.proxy_key_utils import mask_proxy_key


class RotationChain:
    """Read/write access to RotationLink rows."""

    def __init__(self, session: Session, max_hops: Optional[int] = None):
        self.session = session
        self.max_hops = max_hops if max_hops is not None else get_config().vault.max_chain_hops
        self.logger = get_logger()

    def link(self, from_proxy_id: str, to_proxy_id: str, rotated_at: int) -> RotationLink:
        """
        Record that from_proxy_id was replaced by to_proxy_id (flushed, not committed).

        Links that pointed at from_proxy_id as their head now point at to_proxy_id.

        Raises:
            RepositoryError: CONFLICT if from_proxy_id already has a successor
        """
        if from_proxy_id == to_proxy_id:
            raise RepositoryError(
                "A proxy key cannot succeed itself",
                error_code=ErrorCode.CONSTRAINT_VIOLATION,
                proxy_id=mask_proxy_key(from_proxy_id),
            )

        link = RotationLink(
            from_proxy_id=from_proxy_id,
            to_proxy_id=to_proxy_id,
            head_proxy_id=to_proxy_id,
            rotated_at=rotated_at,
        )
        try:
            self.session.add(link)
            self.session.flush()
            self.session.execute(
                update(RotationLink)
                .where(RotationLink.head_proxy_id == from_proxy_id)
                .values(head_proxy_id=to_proxy_id)
                .execution_options(synchronize_session="fetch")
            )
        except IntegrityError as e:
            self.session.rollback()
            raise RepositoryError(
                "Proxy key already has a successor",
                error_code=ErrorCode.CONFLICT,
                status_code=409,
                cause=e,
                from_proxy_id=mask_proxy_key(from_proxy_id),
            ) from e
        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to record rotation link",
                cause=e,
                from_proxy_id=mask_proxy_key(from_proxy_id),
            ) from e
        return link

    def successor(self, proxy_id: str) -> Optional[str]:
        """Return the key that directly replaced proxy_id, if any."""
        return self._lookup(RotationLink.to_proxy_id, proxy_id)

    def head_of(self, proxy_id: str) -> Optional[str]:
        """Return the recorded chain head for a superseded key, if any."""
        return self._lookup(RotationLink.head_proxy_id, proxy_id)

    def _lookup(self, column, proxy_id: str) -> Optional[str]:
        try:
            stmt = select(column).where(RotationLink.from_proxy_id == proxy_id)
            return self.session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to read rotation link", cause=e, proxy_id=mask_proxy_key(proxy_id)
            ) from e

    def predecessor(self, proxy_id: str) -> Optional[str]:
        """Return the key proxy_id directly replaced, if any."""
        try:
            stmt = select(RotationLink.from_proxy_id).where(RotationLink.to_proxy_id == proxy_id)
            return self.session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(
                "Failed to read rotation link", cause=e, proxy_id=mask_proxy_key(proxy_id)
            ) from e

    def follow(self, proxy_id: str) -> str:
        """
        Return the live end of proxy_id's chain.

        Returns proxy_id itself when it has no successor. A healthy chain of
        any length resolves in one hop.

        Raises:
            ChainTooLongError: If more than max_hops links are traversed
        """
        current = proxy_id
        for _ in range(self.max_hops + 1):
            nxt = self.head_of(current)
            if nxt is None:
                return current
            current = nxt

        self.logger.error(
            "Rotation chain exceeds hop limit",
            extra={"proxy_id": mask_proxy_key(proxy_id), "max_hops": self.max_hops},
        )
        raise ChainTooLongError(proxy_id=mask_proxy_key(proxy_id), max_hops=self.max_hops)

    def history(self, proxy_id: str) -> List[str]:
        """
        Return the keys proxy_id replaced, newest first (proxy_id itself excluded).

        Raises:
            ChainTooLongError: If the ancestry loops back on itself
        """
        ancestors: List[str] = []
        seen = {proxy_id}
        current = proxy_id
        while True:
            prev = self.predecessor(current)
            if prev is None:
                return ancestors
            if prev in seen:
                raise ChainTooLongError(proxy_id=mask_proxy_key(proxy_id), max_hops=self.max_hops)
            seen.add(prev)
            ancestors.append(prev)
            current = prev
