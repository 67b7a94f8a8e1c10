"""
SQLite storage backend.

Stores each document as a JSON text row and evaluates storage queries with
SQLite's JSON1 functions. Ideal for lightweight deployments, embedded
applications, and testing (``:memory:``).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import (
    DocumentExistsError,
    DocumentNotFoundError,
    StorageConnectionError,
    StorageIOError,
)
from ..query.sql import LOWER_FUNCTION, SQLiteQueryBuilder, SQLQuery, unicode_lower
from ..query.types import SortKey, StorageQuery
from ..schema import CREATED_AT_KEY, ID_KEY, UPDATED_AT_KEY
from .base import StorageBackend, StoragePage

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT,
    PRIMARY KEY (collection, id)
)
"""

_CREATE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_documents_created
ON documents (collection, created_at)
"""


@dataclass
class SQLiteConfig:
    """Configuration for SQLite storage."""

    db_path: str | Path = ":memory:"

    @classmethod
    def from_env(cls) -> SQLiteConfig:
        """Create config from environment variables."""
        import os

        return cls(db_path=os.environ.get("LOCALIZED_STORAGE_SQLITE_PATH", ":memory:"))


class SQLiteBackend(StorageBackend):
    """
    SQLite storage backend.

    Features:
    - Single file (or in-memory) database
    - Filters compiled to ``json_extract`` / ``json_each`` SQL
    - Sorting and pagination in the database
    """

    def __init__(self, config: SQLiteConfig):
        """
        Initialize SQLite backend.

        Args:
            config: SQLite configuration
        """
        super().__init__()
        self.config = config
        self.conn: aiosqlite.Connection | None = None
        self.builder = SQLiteQueryBuilder()
        self._initialized = False

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteBackend:
        """Create and initialize SQLite backend."""
        if config is None:
            config = SQLiteConfig.from_env()

        backend = cls(config)
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        """Initialize SQLite connection and schema."""
        if self._initialized:
            return

        try:
            self.conn = await aiosqlite.connect(str(self.config.db_path))
            await self.conn.create_function(LOWER_FUNCTION, 1, unicode_lower, deterministic=True)
            await self.conn.execute(_CREATE_TABLE_SQL)
            await self.conn.execute(_CREATE_INDEX_SQL)
            await self.conn.commit()
            self._initialized = True
            logger.info(f"SQLite backend initialized: {self.config.db_path}")
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(str(self.config.db_path), e) from e

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None
        self._initialized = False

    def _ensure_initialized(self) -> aiosqlite.Connection:
        if not self._initialized or self.conn is None:
            raise StorageIOError("query", cause=RuntimeError("Backend not initialized"))
        return self.conn

    # =========================================================================
    # Document Operations
    # =========================================================================

    async def insert(self, collection: str, document: dict[str, Any]) -> None:
        conn = self._ensure_initialized()
        document_id = document[ID_KEY]
        try:
            await conn.execute(
                """
                INSERT INTO documents (collection, id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    collection,
                    document_id,
                    json.dumps(document),
                    document.get(CREATED_AT_KEY),
                    document.get(UPDATED_AT_KEY),
                ),
            )
            await conn.commit()
        except sqlite3.IntegrityError as e:
            raise DocumentExistsError(collection, document_id) from e
        except sqlite3.Error as e:
            raise StorageIOError("insert", f"{collection}/{document_id}", e) from e

    async def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        conn = self._ensure_initialized()
        try:
            async with conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, document_id),
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageIOError("get", f"{collection}/{document_id}", e) from e

        return json.loads(row[0]) if row else None

    async def replace(
        self, collection: str, document_id: str, document: dict[str, Any]
    ) -> None:
        conn = self._ensure_initialized()
        try:
            cursor = await conn.execute(
                """
                UPDATE documents SET data = ?, updated_at = ?
                WHERE collection = ? AND id = ?
                """,
                (
                    json.dumps(document),
                    document.get(UPDATED_AT_KEY),
                    collection,
                    document_id,
                ),
            )
            updated = cursor.rowcount
            await conn.commit()
        except sqlite3.Error as e:
            raise StorageIOError("replace", f"{collection}/{document_id}", e) from e

        if updated == 0:
            raise DocumentNotFoundError(collection, document_id)

    async def delete(self, collection: str, document_id: str) -> bool:
        conn = self._ensure_initialized()
        try:
            cursor = await conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, document_id),
            )
            deleted = cursor.rowcount
            await conn.commit()
        except sqlite3.Error as e:
            raise StorageIOError("delete", f"{collection}/{document_id}", e) from e

        return deleted > 0

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
        select = self.builder.build(collection, query, sort, limit, offset)
        count = self.builder.build_count(collection, query)

        rows = await self._fetch_all(select)
        total_rows = await self._fetch_all(count)
        return StoragePage(
            docs=[json.loads(row[0]) for row in rows],
            total=total_rows[0][0] if total_rows else 0,
        )

    async def find_ids(self, collection: str, query: StorageQuery | None = None) -> list[str]:
        rows = await self._fetch_all(self.builder.build_ids(collection, query))
        return [row[0] for row in rows]

    async def _fetch_all(self, query: SQLQuery) -> list[Any]:
        conn = self._ensure_initialized()
        logger.debug(f"Executing query: {query}")
        try:
            async with conn.execute(query.sql, query.parameters) as cursor:
                return list(await cursor.fetchall())
        except sqlite3.Error as e:
            raise StorageIOError("query", cause=e) from e
