"""Service layer for business logic."""

from .base_service import SessionService
from .notification_service import NotificationService
from .proxy_router import ProxyResponse, ProxyRouter
from .rotation_engine import RotationEngine, RotationLeases, run_rotation_sweep
from .vault_service import VaultService

__all__ = [
    "SessionService",
    "NotificationService",
    "ProxyResponse",
    "ProxyRouter",
    "RotationEngine",
    "RotationLeases",
    "run_rotation_sweep",
    "VaultService",
]
