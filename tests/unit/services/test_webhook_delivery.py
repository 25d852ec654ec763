"""
Tests for background webhook delivery on rotation.

These use a real thread pool and the real send_webhook; only requests.post is
replaced, so the endpoint can be held open while the caller carries on.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
import requests

from proxy_vault.context.session_context import owner_session
from proxy_vault.enums import ResolutionStatus
from proxy_vault.repositories import RotationChain
from proxy_vault.services import RotationEngine, VaultService

OWNER = "0xHOOK0000000000000000000000000000000000A1"
OWNER_KEY = bytes(range(32))
SECRET = "sk-live-webhook-0123456789"
WEBHOOK_URL = "https://hooks.example.com/rotated"


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="test-webhook")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def vault(db_session, clock, executor):
    engine = RotationEngine(db_session, clock=clock, webhook_executor=executor)
    return VaultService(db_session, clock=clock, rotation_engine=engine)


@pytest.fixture
def slow_endpoint(executor):
    """requests.post that blocks until released, then times out."""
    entered = threading.Event()
    release = threading.Event()
    finished = threading.Event()

    def post(*args, **kwargs):
        entered.set()
        try:
            release.wait(10)
            raise requests.Timeout("endpoint too slow")
        finally:
            finished.set()

    with patch("proxy_vault.utils.webhook_utils.requests.post", side_effect=post) as mock_post:
        try:
            yield mock_post, entered, release, finished
        finally:
            release.set()
            executor.shutdown(wait=True)


class TestBackgroundDelivery:
    def test_resolve_does_not_wait_for_webhook(self, vault, clock, executor, slow_endpoint):
        mock_post, entered, release, finished = slow_endpoint

        with owner_session(OWNER, OWNER_KEY):
            vault.provision(
                "priv_p0", SECRET, "openai", rotation_interval_seconds=60, webhook_url=WEBHOOK_URL
            )
            clock.advance(61)
            resolution = vault.resolve("priv_p0")

        assert resolution.status == ResolutionStatus.ROTATED
        assert resolution.secret_value() == SECRET
        assert entered.wait(5)
        assert not finished.is_set()

        release.set()
        executor.shutdown(wait=True)
        assert finished.is_set()
        mock_post.assert_called_once()
        assert mock_post.call_args.args[0] == WEBHOOK_URL

    def test_failed_delivery_keeps_rotation(
        self, vault, clock, executor, slow_endpoint, db_session
    ):
        _, _, release, _ = slow_endpoint
        release.set()

        with owner_session(OWNER, OWNER_KEY):
            vault.provision(
                "priv_p0", SECRET, "openai", rotation_interval_seconds=60, webhook_url=WEBHOOK_URL
            )
        clock.advance(60)
        new_id = vault.rotation_engine.check_and_rotate("priv_p0")
        executor.shutdown(wait=True)

        assert new_id is not None
        assert RotationChain(db_session).successor("priv_p0") == new_id

    def test_sweep_does_not_wait_for_webhooks(self, vault, clock, slow_endpoint):
        _, entered, _, finished = slow_endpoint

        with owner_session(OWNER, OWNER_KEY):
            for i in range(3):
                vault.provision(
                    f"priv_{i}",
                    SECRET,
                    "openai",
                    rotation_interval_seconds=60,
                    webhook_url=WEBHOOK_URL,
                )
        clock.advance(60)

        result = vault.sweep_rotations()

        assert result.rotated == 3
        assert entered.wait(5)
        assert not finished.is_set()
