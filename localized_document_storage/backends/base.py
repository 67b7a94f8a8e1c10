"""
Abstract storage backend interface.

Backends persist stored documents (localized fields as per-locale
mappings) and evaluate bound storage queries. They know nothing about
locales, fallback or the field schema: all of that is resolved before a
call reaches them.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from ..query.types import SortKey, StorageQuery


@dataclass
class StoragePage:
    """One page of stored documents and the total number of matches."""

    docs: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0


@dataclass
class _DocumentLock:
    """A per-document lock and the number of tasks holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class StorageBackend(ABC):
    """
    Abstract base for all storage backends.

    Implementations must support:
    - Insert, get, replace and delete of documents keyed by (collection, id)
    - Filtered, sorted, paginated reads from bound storage queries
    - Id-only reads used to bind relationship joins

    Every stored document carries its own ``id`` key.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], _DocumentLock] = {}

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend (connections, schema, directories)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup resources."""
        pass

    async def __aenter__(self) -> StorageBackend:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @asynccontextmanager
    async def lock(self, collection: str, document_id: str) -> AsyncIterator[None]:
        """Serialize read-modify-write cycles on one document.

        A lock is kept only while some task holds or awaits it.
        """
        key = (collection, document_id)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _DocumentLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @property
    def active_locks(self) -> int:
        """Number of documents whose lock is held or awaited."""
        return len(self._locks)

    # =========================================================================
    # Document Operations
    # =========================================================================

    @abstractmethod
    async def insert(self, collection: str, document: dict[str, Any]) -> None:
        """
        Store a new document.

        Raises:
            DocumentExistsError: A document with the same id exists
        """
        pass

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        """Return a stored document, or None if it does not exist."""
        pass

    @abstractmethod
    async def replace(
        self, collection: str, document_id: str, document: dict[str, Any]
    ) -> None:
        """
        Overwrite a stored document.

        Raises:
            DocumentNotFoundError: No document with this id exists
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> bool:
        """Delete a document. Returns True if it existed."""
        pass

    # =========================================================================
    # Query Operations
    # =========================================================================

    @abstractmethod
    async def find(
        self,
        collection: str,
        query: StorageQuery | None = None,
        sort: list[SortKey] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> StoragePage:
        """
        Find stored documents.

        Args:
            collection: Collection slug
            query: Bound storage query (no joins), None for all documents
            sort: Sort keys, applied in order
            limit: Maximum documents to return, None for no limit
            offset: Matching documents to skip

        Returns:
            The requested page and the total number of matches
        """
        pass

    @abstractmethod
    async def find_ids(self, collection: str, query: StorageQuery | None = None) -> list[str]:
        """Return the ids of every document matching a bound storage query."""
        pass
