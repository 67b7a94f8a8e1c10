"""
Storage backend abstraction layer.

Provides one interface over different stores (memory, SQLite, local files).
Each backend implements the same interface, allowing seamless switching.
"""

from .base import StorageBackend, StoragePage
from .local import LocalFileBackend, LocalFileConfig
from .memory import MemoryBackend
from .sqlite import SQLiteBackend, SQLiteConfig

__all__ = [
    # Core classes
    "StorageBackend",
    "StoragePage",
    # Implementations
    "MemoryBackend",
    "SQLiteBackend",
    "SQLiteConfig",
    "LocalFileBackend",
    "LocalFileConfig",
]
