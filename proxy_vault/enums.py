"""
Enums used across the proxy_vault package.

This module contains enum definitions that are used by multiple modules
to avoid circular import issues.
"""

import enum


class ResolutionStatus(enum.Enum):
    """Outcome of resolving a proxy key."""

    RESOLVED = "RESOLVED"
    ROTATED = "ROTATED"
    REVOKED = "REVOKED"
    NOT_FOUND = "NOT_FOUND"


class AuthStyle(enum.Enum):
    """How an upstream provider expects its credential."""

    BEARER = "BEARER"
    HEADER = "HEADER"
    QUERY_PARAM = "QUERY_PARAM"
    HEADER_AND_BEARER = "HEADER_AND_BEARER"
