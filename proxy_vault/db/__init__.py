"""
SQLAlchemy models for the proxy vault.

This module provides a common entry point for all models.
"""

# Import base definitions
from .db_base import JSON, TimestampMixin, current_time_ms, utc_now

# Import configuration
from .db_config import (
    Base,
    DatabaseConfig,
    DatabaseManager,
    close_db,
    get_db_manager,
    get_development_config,
    get_production_config,
    import_all_models,
    initialize_db,
    set_db_manager,
)

# Import models
from .db_credential_models import CredentialRecord
from .db_notification_models import Notification
from .db_rotation_models import RotationLink

# Re-export all models for easy access
__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "TimestampMixin",
    "current_time_ms",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "close_db",
    "get_db_manager",
    "get_development_config",
    "get_production_config",
    "import_all_models",
    "initialize_db",
    "set_db_manager",
    # Models
    "CredentialRecord",
    "Notification",
    "RotationLink",
]
