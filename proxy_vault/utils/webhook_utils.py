"""
Best-effort webhook delivery.

Webhooks tell an owner's application that a proxy key was rotated. Delivery is
never allowed to fail the operation that triggered it: errors are logged and
swallowed here, and the caller gets a boolean.

Rotations hand delivery to a shared background executor so that a slow
endpoint never holds up the request that triggered the rotation.
"""

import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import requests

from ..config import get_config
from .json_utils import dumps
from .logger import get_logger


def _webhook_host(url: str) -> str:
    """Only the host is logged; webhook URLs often embed tokens in the path or query."""
    return urlsplit(url).netloc or "<invalid>"


def send_webhook(
    url: str,
    payload: Dict[str, Any],
    timeout: Optional[float] = None,
    session: Optional[requests.Session] = None,
) -> bool:
    """
    POST a JSON payload to a webhook URL.

    Args:
        url: Destination URL configured on the credential
        payload: JSON-serializable body
        timeout: Seconds before giving up; defaults to config.vault.webhook_timeout_seconds
        session: Optional requests.Session (connection reuse, testing)

    Returns:
        True if the endpoint answered with a 2xx status, False otherwise
    """
    logger = get_logger()
    config = get_config()

    if not config.features.enable_webhooks:
        logger.debug("Webhooks disabled, skipping delivery", extra={"webhook_host": _webhook_host(url)})
        return False

    timeout = timeout if timeout is not None else config.vault.webhook_timeout_seconds
    http = session or requests

    try:
        response = http.post(
            url,
            data=dumps(payload),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.warning(
            "Webhook delivery failed",
            extra={
                "webhook_host": _webhook_host(url),
                "event": payload.get("event"),
                "error_type": type(e).__name__,
            },
        )
        return False

    if not response.ok:
        logger.warning(
            "Webhook endpoint rejected notification",
            extra={
                "webhook_host": _webhook_host(url),
                "event": payload.get("event"),
                "status_code": response.status_code,
            },
        )
        return False

    logger.info(
        "Webhook notified",
        extra={"webhook_host": _webhook_host(url), "event": payload.get("event")},
    )
    return True


_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_webhook_executor() -> Executor:
    """Return the process-wide webhook executor, creating it on first use."""
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=get_config().vault.webhook_workers,
                thread_name_prefix="vault-webhook",
            )
        return _executor


def shutdown_webhook_executor(wait: bool = True) -> None:
    """Stop the webhook executor; pending deliveries finish first when wait is True."""
    global _executor
    with _executor_lock:
        executor, _executor = _executor, None
    if executor is not None:
        executor.shutdown(wait=wait)
