"""
Test fixtures for proxy vault unit tests.

This module provides shared test fixtures including database setup,
a controllable clock, owner keys and unlocked owner sessions.
"""

from concurrent.futures import Executor, Future
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from proxy_vault.config import reset_config
from proxy_vault.context.session_context import owner_session
from proxy_vault.db import (
    DatabaseConfig,
    DatabaseManager,
    import_all_models,
)
from proxy_vault.db.db_config import Base, initialize_db
from proxy_vault.utils.logger import reset_logging

OWNER_A = "0xA11CE000000000000000000000000000000000A1"
OWNER_B = "0xB0B00000000000000000000000000000000000B2"
OWNER_A_KEY = bytes(range(32))
OWNER_B_KEY = bytes(range(100, 132))

# 2026-01-01T00:00:00Z
START_MS = 1767225600000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


class InlineExecutor(Executor):
    """Runs submitted work immediately so webhook calls can be asserted in order."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture(autouse=True)
def clean_config():
    """Every test starts from environment-derived configuration."""
    reset_config()
    reset_logging()
    yield
    reset_config()
    reset_logging()


@pytest.fixture(autouse=True)
def inline_webhooks():
    """Deliver rotation webhooks on the calling thread."""
    with patch(
        "proxy_vault.services.rotation_engine.get_webhook_executor",
        return_value=InlineExecutor(),
    ):
        yield


@pytest.fixture(scope="session")
def db_config() -> DatabaseConfig:
    """Create SQLite in-memory database configuration for testing."""
    return DatabaseConfig(
        db_type="sqlite",
        database=":memory:",
        echo=False,
        development_mode=True,
    )


@pytest.fixture(scope="session")
def db_manager(db_config: DatabaseConfig) -> DatabaseManager:
    """Create and initialize database manager with all models."""
    import_all_models()
    return initialize_db(db_config)


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """
    Create a database session for each test.

    Tables are created before and dropped after every test so each test
    starts from an empty vault.
    """
    Base.metadata.create_all(db_manager.engine)
    session = db_manager.get_session()

    yield session

    session.rollback()
    db_manager.close_session()
    Base.metadata.drop_all(db_manager.engine)


@pytest.fixture
def file_db_manager(tmp_path) -> DatabaseManager:
    """
    File-backed SQLite database for multi-threaded tests.

    Each thread opens its own session via new_session().
    """
    import_all_models()
    manager = DatabaseManager(
        DatabaseConfig(
            db_type="sqlite",
            database=str(tmp_path / "vault.db"),
            development_mode=True,
        )
    )
    manager.create_tables()
    yield manager
    manager.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def owner_a():
    """Vault unlocked for OWNER_A for the duration of the test."""
    with owner_session(OWNER_A, OWNER_A_KEY):
        yield OWNER_A


@pytest.fixture
def owner_b_session():
    """Factory-style access to OWNER_B's session as a context manager."""
    return lambda: owner_session(OWNER_B, OWNER_B_KEY)
