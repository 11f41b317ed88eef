"""Core utilities for the client."""

from restgate.core.cache import CacheBackend, InMemoryCache
from restgate.core.config import Settings, settings
from restgate.core.logging import get_log_context, get_logger, setup_logging

__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "Settings",
    "settings",
    "get_log_context",
    "get_logger",
    "setup_logging",
]
