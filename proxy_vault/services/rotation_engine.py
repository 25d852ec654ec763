"""
Rotation engine: replaces due proxy keys with fresh ones.

Rotation never touches the sealed secret. The new record copies the old
record's ciphertext and nonce, so no owner session is needed and the scheduled
sweep can run unattended.

A rotation happens at most once per record, even with concurrent callers:

1. RotationLeases serializes callers for the same proxy key in this process.
2. compare_and_supersede() is a conditional UPDATE, so a second process that
   read the same state loses at the database.
3. rotation_links.from_proxy_id is a primary key, so a record can never gain
   two successors.

Losers return the winner's successor instead of rotating again.

Webhooks are queued on a background executor once the lease is released; the
caller never waits for delivery.
"""

import threading
from concurrent.futures import Executor, Future
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Generator, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import get_config
from ..constants import NotificationType
from ..context.operation_context import operation
from ..db.db_config import get_db_manager
from ..db.db_credential_models import CredentialRecord
from ..repositories.credential_record_repository import CredentialRecordRepository
from ..repositories.rotation_chain import RotationChain
from ..schemas.vault_schemas import RotationInfo, RotationSweepResult, WebhookPayload
from ..utils.encryption_utils import EncryptedSecret
from ..utils.proxy_key_utils import generate_proxy_key, mask_proxy_key
from ..utils.webhook_utils import get_webhook_executor, send_webhook
from .base_service import Clock, SessionService
from .notification_service import NotificationService


class RotationLeases:
    """
    Per-proxy-key lock registry.

    Locks are created on demand and dropped when no caller holds or waits for
    them, so the registry does not grow with the number of keys ever rotated.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @contextmanager
    def hold(self, proxy_id: str) -> Generator[None, None, None]:
        with self._guard:
            lock = self._locks.setdefault(proxy_id, threading.Lock())
            self._waiters[proxy_id] = self._waiters.get(proxy_id, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[proxy_id] -= 1
                if self._waiters[proxy_id] == 0:
                    del self._waiters[proxy_id]
                    del self._locks[proxy_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every engine in the process
_leases = RotationLeases()


def get_rotation_leases() -> RotationLeases:
    return _leases


@dataclass(frozen=True)
class _RotationEvent:
    owner_id: str
    old_proxy_id: str
    new_proxy_id: str
    provider: str
    rotated_at: int
    interval_seconds: int
    webhook_url: Optional[str]


def is_rotation_due(record: CredentialRecord, now_ms: int) -> bool:
    """True when the record's interval is positive and has fully elapsed."""
    interval = record.rotation_interval_seconds or 0
    return interval > 0 and now_ms - record.last_rotated_at >= interval * 1000


class RotationEngine(SessionService):
    """Opportunistic and scheduled rotation of proxy keys."""

    def __init__(
        self,
        session: Session,
        clock: Optional[Clock] = None,
        leases: Optional[RotationLeases] = None,
        notification_service: Optional[NotificationService] = None,
        webhook_executor: Optional[Executor] = None,
    ):
        super().__init__(session, clock)
        self.records = CredentialRecordRepository(session)
        self.chain = RotationChain(session)
        self.leases = leases or get_rotation_leases()
        self.notifications = notification_service or NotificationService(session)
        self.webhook_executor = webhook_executor

    def check_and_rotate(self, proxy_id: str) -> Optional[str]:
        """
        Rotate proxy_id if it is due.

        Returns:
            The new proxy key if this call rotated; the existing successor if
            proxy_id was already superseded; None if proxy_id is unknown,
            revoked or not yet due.
        """
        new_id, _ = self._rotate(proxy_id)
        return new_id

    def _rotate(self, proxy_id: str) -> Tuple[Optional[str], bool]:
        """Returns (resulting proxy key, whether this call performed the rotation)."""
        event: Optional[_RotationEvent] = None

        with self.leases.hold(proxy_id):
            record = self.records.get(proxy_id)
            if record is None or record.revoked:
                self.session.rollback()
                return None, False
            if record.superseded:
                self.session.rollback()
                return self.chain.successor(proxy_id), False

            now = self.clock()
            if not is_rotation_due(record, now):
                self.session.rollback()
                return None, False

            new_id = generate_proxy_key()
            event = _RotationEvent(
                owner_id=record.owner_id,
                old_proxy_id=proxy_id,
                new_proxy_id=new_id,
                provider=record.provider,
                rotated_at=now,
                interval_seconds=record.rotation_interval_seconds,
                webhook_url=record.webhook_url,
            )

            with self.transaction():
                if not self.records.compare_and_supersede(proxy_id, record.last_rotated_at):
                    # Another process rotated or revoked it after our read
                    event = None
                else:
                    self.records.create(
                        proxy_id=new_id,
                        owner_id=event.owner_id,
                        encrypted=EncryptedSecret(record.ciphertext, record.nonce),
                        provider=event.provider,
                        rotation_interval_seconds=event.interval_seconds,
                        last_rotated_at=now,
                        webhook_url=event.webhook_url,
                    )
                    self.chain.link(proxy_id, new_id, now)
                    self.notifications.add(
                        event.owner_id,
                        NotificationType.KEY_ROTATED,
                        f"{event.provider} Key Rotated",
                        f"Your {event.provider} API key has been automatically rotated. "
                        "Open your dashboard to view your latest key.",
                        {"provider": event.provider, "rotated_at": now},
                    )

            if event is None:
                return self.chain.successor(proxy_id), False

        self.logger.info(
            "Rotated proxy key",
            extra={
                "proxy_id": mask_proxy_key(event.old_proxy_id),
                "new_proxy_id": mask_proxy_key(event.new_proxy_id),
                "provider": event.provider,
            },
        )
        self._announce(event)
        return event.new_proxy_id, True

    def _announce(self, event: _RotationEvent) -> None:
        """Queue best-effort webhook delivery. Called after the lease is released."""
        if not event.webhook_url:
            return
        payload = WebhookPayload(
            old_proxy_id=event.old_proxy_id,
            new_proxy_id=event.new_proxy_id,
            provider=event.provider,
            rotated_at=event.rotated_at,
            next_rotation=event.rotated_at + event.interval_seconds * 1000,
        )
        executor = self.webhook_executor or get_webhook_executor()
        future = executor.submit(send_webhook, event.webhook_url, payload.to_json_dict())
        future.add_done_callback(self._log_delivery_error)

    def _log_delivery_error(self, future: Future) -> None:
        if future.cancelled() or future.exception() is None:
            return
        self.logger.warning(
            "Webhook delivery raised",
            extra={"error_type": type(future.exception()).__name__},
        )

    @operation()
    def rotate_expired_keys(
        self, cancel_event: Optional[threading.Event] = None
    ) -> RotationSweepResult:
        """
        Rotate every live record whose interval has elapsed.

        Each record is rotated in its own transaction. A failing record is
        logged, counted and skipped. Setting cancel_event stops the sweep
        between records; work already committed stays committed.
        """
        result = RotationSweepResult()
        now = self.clock()
        batch_size = get_config().vault.sweep_batch_size
        after: Optional[str] = None

        while True:
            candidates = self.records.list_rotation_candidates(now, limit=batch_size, after=after)
            self.session.rollback()
            if not candidates:
                break

            for proxy_id in candidates:
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    self.logger.info(
                        "Rotation sweep cancelled",
                        extra={"rotated": result.rotated, "failed": result.failed},
                    )
                    return result

                try:
                    new_id, rotated = self._rotate(proxy_id)
                except Exception as e:
                    self.session.rollback()
                    result.failed += 1
                    self.logger.warning(
                        "Rotation failed, skipping",
                        extra={
                            "proxy_id": mask_proxy_key(proxy_id),
                            "error_type": type(e).__name__,
                        },
                    )
                    continue

                if rotated and new_id:
                    result.rotated += 1
                    result.keys[proxy_id] = new_id

            after = candidates[-1]

        self.logger.info(
            "Rotation sweep complete",
            extra={"rotated": result.rotated, "failed": result.failed},
        )
        return result

    def get_rotation_info(self, proxy_id: str) -> Optional[RotationInfo]:
        """
        Rotation schedule of the current key in proxy_id's chain. Read only.

        Returns None if the chain's head is unknown.
        """
        head = self.chain.follow(proxy_id)
        record = self.records.get(head)
        if record is None:
            return None

        interval = record.rotation_interval_seconds or 0
        if interval <= 0:
            return RotationInfo(interval_seconds=0, seconds_until_next_rotation=0)

        remaining_ms = max(0, record.last_rotated_at + interval * 1000 - self.clock())
        return RotationInfo(
            interval_seconds=interval,
            seconds_until_next_rotation=-(-remaining_ms // 1000),
        )

    def find_current_key(self, proxy_id: str) -> Optional[str]:
        """
        Return the live proxy key for any key in a chain.

        The head is rotated first if it is due and opportunistic rotation is enabled.

        Returns None if the key is unknown or its chain ends in a revoked key.
        """
        head = self.chain.follow(proxy_id)
        record = self.records.get(head)
        if record is None or record.revoked:
            return None
        if not get_config().features.enable_opportunistic_rotation:
            return head
        rotated = self.check_and_rotate(head)
        return rotated or head


def run_rotation_sweep(
    cancel_event: Optional[threading.Event] = None, clock: Optional[Clock] = None
) -> RotationSweepResult:
    """
    Run one sweep on a fresh session from the global database manager.

    Entry point for schedulers (cron, timer triggers).
    """
    session = get_db_manager().new_session()
    try:
        return RotationEngine(session, clock=clock).rotate_expired_keys(cancel_event)
    finally:
        session.close()
