"""Confidential credential vault and rotation engine for proxied API keys."""

__version__ = "0.1.0"
