"""
In-memory storage backend.

Keeps stored documents in dicts and evaluates queries in process. Intended
for tests and short-lived tooling; nothing survives ``close()``.
"""

from __future__ import annotations

import copy
from typing import Any

from ..exceptions import DocumentExistsError, DocumentNotFoundError
from ..query.matcher import apply_query, matches
from ..query.types import SortKey, StorageQuery
from ..schema import ID_KEY
from .base import StorageBackend, StoragePage


class MemoryBackend(StorageBackend):
    """Dict-backed storage backend."""

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._initialized = False

    @classmethod
    async def create(cls) -> MemoryBackend:
        """Create and initialize a memory backend."""
        backend = cls()
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        self._initialized = True

    async def close(self) -> None:
        self._collections.clear()
        self._initialized = False

    def _documents(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    async def insert(self, collection: str, document: dict[str, Any]) -> None:
        documents = self._documents(collection)
        document_id = document[ID_KEY]
        if document_id in documents:
            raise DocumentExistsError(collection, document_id)
        documents[document_id] = copy.deepcopy(document)

    async def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        document = self._documents(collection).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def replace(
        self, collection: str, document_id: str, document: dict[str, Any]
    ) -> None:
        documents = self._documents(collection)
        if document_id not in documents:
            raise DocumentNotFoundError(collection, document_id)
        documents[document_id] = copy.deepcopy(document)

    async def delete(self, collection: str, document_id: str) -> bool:
        return self._documents(collection).pop(document_id, None) is not None

    async def find(
        self,
        collection: str,
        query: StorageQuery | None = None,
        sort: list[SortKey] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> StoragePage:
        docs, total = apply_query(self._documents(collection).values(), query, sort, limit, offset)
        return StoragePage([copy.deepcopy(doc) for doc in docs], total)

    async def find_ids(self, collection: str, query: StorageQuery | None = None) -> list[str]:
        return [
            document_id
            for document_id, doc in self._documents(collection).items()
            if matches(doc, query)
        ]
