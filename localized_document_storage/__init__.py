"""
Localized Document Storage

Field-level localization engine for a document-oriented CMS data layer.

Provides:
- Per-locale storage of localized fields with fallback on read
- Locale-scoped writes that never disturb other locales
- Locale-aware filtering, including through relationships
- Multiple storage backends (memory, SQLite, local JSON files)

Usage:

    >>> from localized_document_storage import (
    ...     CollectionConfig, DocumentService, Field, FieldType,
    ...     LocalizationConfig, Schema, SQLiteBackend, SQLiteConfig,
    ... )
    >>> schema = Schema([
    ...     CollectionConfig("posts", [Field("title", FieldType.TEXT, localized=True)]),
    ... ])
    >>> async with SQLiteBackend(SQLiteConfig("cms.db")) as backend:
    ...     service = DocumentService(backend, schema, LocalizationConfig(locales=["en", "es"]))
    ...     post = await service.create("posts", {"title": "Hello"})
    ...     await service.update("posts", post["id"], {"title": "Hola"}, locale="es")
    ...
    ...     # Every locale at once
    ...     await service.find_by_id("posts", post["id"], locale="all")
    ...     # {"id": ..., "title": {"en": "Hello", "es": "Hola"}, ...}

Backend Selection:

    # In-process, for tests and tooling
    from localized_document_storage.backends import MemoryBackend

    # SQLite for embedded applications
    from localized_document_storage.backends import SQLiteBackend, SQLiteConfig

    # One JSON file per document
    from localized_document_storage.backends import LocalFileBackend, LocalFileConfig
"""

# Backend abstraction
from .backends import (
    LocalFileBackend,
    LocalFileConfig,
    MemoryBackend,
    SQLiteBackend,
    SQLiteConfig,
    StorageBackend,
    StoragePage,
)
from .config import LocalizationConfig

# Exceptions
from .exceptions import (
    CollectionNotFoundError,
    DocumentExistsError,
    DocumentNotFoundError,
    InvalidFieldPathError,
    InvalidLocaleError,
    InvalidOperatorError,
    LocalizationStorageError,
    QueryValidationError,
    RequiredFieldMissingError,
    SchemaError,
    StorageConnectionError,
    StorageIOError,
    ValidationError,
)
from .locales import ALL_LOCALES, NO_FALLBACK_TOKEN, LocaleRegistry
from .merger import WriteMerger
from .query import QueryTranslator
from .resolver import ReadResolver

# Schema declaration
from .schema import (
    Block,
    CollectionConfig,
    Field,
    FieldType,
    GlobalConfig,
    Schema,
)
from .service import DocumentService, FindResult
from .values import EMPTY, CellState, LocalizedValueStore

__all__ = [
    # Service
    "DocumentService",
    "FindResult",
    # Configuration
    "LocalizationConfig",
    "LocaleRegistry",
    "ALL_LOCALES",
    "NO_FALLBACK_TOKEN",
    # Schema
    "Schema",
    "CollectionConfig",
    "GlobalConfig",
    "Field",
    "FieldType",
    "Block",
    # Components
    "ReadResolver",
    "WriteMerger",
    "QueryTranslator",
    "LocalizedValueStore",
    "CellState",
    "EMPTY",
    # Backends
    "StorageBackend",
    "StoragePage",
    "MemoryBackend",
    "SQLiteBackend",
    "SQLiteConfig",
    "LocalFileBackend",
    "LocalFileConfig",
    # Exceptions
    "LocalizationStorageError",
    "InvalidLocaleError",
    "SchemaError",
    "CollectionNotFoundError",
    "DocumentNotFoundError",
    "DocumentExistsError",
    "ValidationError",
    "RequiredFieldMissingError",
    "QueryValidationError",
    "InvalidFieldPathError",
    "InvalidOperatorError",
    "StorageIOError",
    "StorageConnectionError",
]

__version__ = "0.1.0"
