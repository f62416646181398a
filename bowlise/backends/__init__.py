"""
Access-control backend abstraction layer.

Provides the abstract backend contract plus reference implementations
(in-memory and SQLite). Each backend implements the same interface, allowing
seamless switching, and the cache facade implements it too.
"""

from .base import AccessControlBackend, validate_ids
from .memory import InMemoryBackend
from .sqlite import SQLiteBackend, SQLiteConfig

__all__ = [
    # Core contract
    "AccessControlBackend",
    "validate_ids",
    # Implementations
    "InMemoryBackend",
    "SQLiteBackend",
    "SQLiteConfig",
]
