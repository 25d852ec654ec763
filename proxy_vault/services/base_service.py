"""
Base service implementation with common functionality for vault services.
"""

from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy.orm import Session

from ..db.db_base import current_time_ms
from ..utils.logger import get_logger

Clock = Callable[[], int]


class SessionService:
    """
    Base for services that work on one SQLAlchemy session.

    Services commit their own unit of work: rotation must be durable before the
    per-key lease is released.
    """

    def __init__(self, session: Session, clock: Optional[Clock] = None):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations
            clock: Callable returning the current time in epoch milliseconds
        """
        self.session = session
        self.clock: Clock = clock or current_time_ms
        self.logger = get_logger()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Context manager for transactional operations.

        Commits on success, rolls back and re-raises on any exception.
        """
        try:
            yield self.session
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
