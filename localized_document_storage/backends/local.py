"""
Local file storage backend.

Stores one JSON file per document under ``<base_path>/<collection>/<id>.json``
and evaluates queries in process after loading a collection's files.

Directory layout:
    base_path/
      posts/
        65a1f0c2e4b0a1b2c3d4e5f6.json
      _globals/
        site-settings.json
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..exceptions import DocumentExistsError, DocumentNotFoundError, StorageIOError
from ..local.file_ops import (
    ensure_directory,
    list_json_files,
    read_json,
    remove_file,
    write_json_atomic,
)
from ..query.matcher import apply_query, matches
from ..query.types import SortKey, StorageQuery
from ..schema import ID_KEY
from .base import StorageBackend, StoragePage

logger = logging.getLogger(__name__)

# Ids and slugs become file and directory names.
_SAFE_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


@dataclass
class LocalFileConfig:
    """Configuration for local file storage."""

    base_path: str | Path = Path.home() / ".localized-storage"

    @classmethod
    def from_env(cls) -> LocalFileConfig:
        """Create config from environment variables."""
        import os

        base_path = os.environ.get("LOCALIZED_STORAGE_LOCAL_PATH")
        if base_path:
            return cls(base_path=Path(base_path).expanduser())
        return cls()


class LocalFileBackend(StorageBackend):
    """One-file-per-document storage backend."""

    def __init__(self, config: LocalFileConfig):
        super().__init__()
        self.config = config
        self.base_path = Path(config.base_path)
        self._initialized = False

    @classmethod
    async def create(cls, config: LocalFileConfig | None = None) -> LocalFileBackend:
        """Create and initialize local file backend."""
        if config is None:
            config = LocalFileConfig.from_env()

        backend = cls(config)
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        if self._initialized:
            return
        await ensure_directory(self.base_path)
        self._initialized = True
        logger.info(f"Local file backend initialized: {self.base_path}")

    async def close(self) -> None:
        self._initialized = False

    def _collection_dir(self, collection: str) -> Path:
        if not _SAFE_NAME.match(collection):
            raise StorageIOError("resolve_path", collection, ValueError("unsafe collection name"))
        return self.base_path / collection

    def _document_path(self, collection: str, document_id: str) -> Path:
        if not _SAFE_NAME.match(document_id):
            raise StorageIOError("resolve_path", document_id, ValueError("unsafe document id"))
        return self._collection_dir(collection) / f"{document_id}.json"

    async def _load_collection(self, collection: str) -> list[dict[str, Any]]:
        documents = []
        for path in await list_json_files(self._collection_dir(collection)):
            document = await read_json(path)
            if document is not None:
                documents.append(document)
        return documents

    # =========================================================================
    # Document Operations
    # =========================================================================

    async def insert(self, collection: str, document: dict[str, Any]) -> None:
        document_id = document[ID_KEY]
        path = self._document_path(collection, document_id)
        # The existence check and the write must not interleave with another insert.
        async with self.lock(collection, document_id):
            if await read_json(path) is not None:
                raise DocumentExistsError(collection, document_id)
            await write_json_atomic(path, document)

    async def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        return await read_json(self._document_path(collection, document_id))

    async def replace(
        self, collection: str, document_id: str, document: dict[str, Any]
    ) -> None:
        path = self._document_path(collection, document_id)
        if await read_json(path) is None:
            raise DocumentNotFoundError(collection, document_id)
        await write_json_atomic(path, document)

    async def delete(self, collection: str, document_id: str) -> bool:
        return await remove_file(self._document_path(collection, document_id))

    # =========================================================================
    # Query Operations
    # =========================================================================

    async def find(
        self,
        collection: str,
        query: StorageQuery | None = None,
        sort: list[SortKey] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> StoragePage:
        documents = await self._load_collection(collection)
        docs, total = apply_query(documents, query, sort, limit, offset)
        return StoragePage(docs, total)

    async def find_ids(self, collection: str, query: StorageQuery | None = None) -> list[str]:
        documents = await self._load_collection(collection)
        return [doc[ID_KEY] for doc in documents if matches(doc, query)]
