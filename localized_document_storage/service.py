"""
Document service.

Entry point for create / update / find / find_by_id / delete on collections
and find_global / update_global on globals. Each call:

1. parses the requested locale (``all`` allowed) and fallback locale
2. writes go through the merger under the backend's per-document lock,
   then through required-field validation
3. reads go through the query translator, relationship joins are bound to
   id lists, the backend evaluates the query
4. results are populated to the requested depth and resolved for the locale

Usage:
    backend = await SQLiteBackend.create(SQLiteConfig(db_path="cms.db"))
    service = DocumentService(backend, schema, LocalizationConfig(locales=["en", "es"]))

    post = await service.create("posts", {"title": "Hello"})
    await service.update("posts", post["id"], {"title": "Hola"}, locale="es")
    result = await service.find("posts", {"title": {"equals": "Hola"}}, locale="es")
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .backends.base import StorageBackend
from .config import LocalizationConfig
from .exceptions import DocumentNotFoundError, QueryValidationError
from .id_utils import document_id
from .locales import ALL_LOCALES
from .logging_utils import StorageLoggerAdapter, get_storage_logger
from .merger import WriteMerger
from .query.translator import QueryTranslator
from .query.types import (
    And,
    Condition,
    ElemMatch,
    Join,
    Not,
    Operator,
    Or,
    SortKey,
    StoragePath,
    StorageQuery,
)
from .resolver import PopulatedDocuments, ReadResolver, iter_references
from .schema import (
    CREATED_AT_KEY,
    GLOBALS_COLLECTION,
    ID_KEY,
    UPDATED_AT_KEY,
    CollectionConfig,
    Field,
    Schema,
)
from .validation import RequiredFieldValidator

logger = get_storage_logger("service")


@dataclass
class FindResult:
    """A page of resolved documents.

    Attributes:
        docs: Documents resolved for the requested locale
        total_docs: Number of documents matching the filter
        limit: Page size, None when unpaginated
        page: 1-based page number
        total_pages: Number of pages at this page size
        has_next_page: Whether a later page exists
        has_prev_page: Whether an earlier page exists
    """

    docs: list[dict[str, Any]] = field(default_factory=list)
    total_docs: int = 0
    limit: int | None = None
    page: int = 1
    total_pages: int = 0
    has_next_page: bool = False
    has_prev_page: bool = False


def _now() -> str:
    return datetime.now(UTC).isoformat()


class DocumentService:
    """Locale-aware document operations over a storage backend."""

    def __init__(
        self,
        backend: StorageBackend,
        schema: Schema,
        config: LocalizationConfig | None = None,
        id_factory: Callable[[], str] = document_id,
    ):
        """
        Initialize the document service.

        Args:
            backend: Initialized storage backend
            schema: Declared collections and globals
            config: Localization configuration (default: from environment)
            id_factory: Generator for new document ids
        """
        self.backend = backend
        self.schema = schema
        self.config = config if config is not None else LocalizationConfig.from_env()
        self.registry = self.config.registry()
        self.resolver = ReadResolver(self.registry)
        self.merger = WriteMerger(self.registry)
        self.validator = RequiredFieldValidator()
        self.translator = QueryTranslator(schema, self.registry)
        self._new_id = id_factory

    def _log(self, collection: str, locale: str) -> StorageLoggerAdapter:
        return StorageLoggerAdapter.for_request(logger, collection, locale)

    def _request(
        self, locale: str | None, fallback_locale: str | bool | None
    ) -> tuple[str, str | None]:
        return self.registry.parse(locale), self.registry.parse_fallback(fallback_locale)

    # =========================================================================
    # Collections
    # =========================================================================

    async def create(
        self,
        collection: str,
        data: dict[str, Any],
        locale: str | None = None,
        fallback_locale: str | bool | None = None,
        depth: int | None = None,
    ) -> dict[str, Any]:
        """
        Create a document.

        Localized values in ``data`` are stored for ``locale``; under
        ``all`` they are per-locale mappings. Every required field is
        checked for the target locale.

        Raises:
            CollectionNotFoundError: Unknown collection
            InvalidLocaleError: Unregistered locale
            ValidationError: A value does not fit its field, or a required
                field is empty
            DocumentExistsError: ``data`` carries an id that is taken
        """
        config = self.schema.collection(collection)
        target, fallback = self._request(locale, fallback_locale)
        log = self._log(collection, target)

        base: dict[str, Any] = {
            ID_KEY: str(data[ID_KEY]) if data.get(ID_KEY) is not None else self._new_id()
        }
        if config.timestamps:
            now = _now()
            base[CREATED_AT_KEY] = now
            base[UPDATED_AT_KEY] = now

        seeded = self._with_defaults(config.fields, data)
        stored = self.merger.merge(base, config.fields, target, seeded)
        self._check_required(config.fields, stored, None, target, fallback)

        await self.backend.insert(collection, stored)
        log.info("Created document", extra={"document_id": stored[ID_KEY], "operation": "create"})
        return await self._present(config.fields, stored, target, fallback, depth)

    async def update(
        self,
        collection: str,
        document_id: str,
        data: dict[str, Any],
        locale: str | None = None,
        fallback_locale: str | bool | None = None,
        depth: int | None = None,
    ) -> dict[str, Any]:
        """
        Update one locale (or every locale under ``all``) of a document.

        Only supplied fields change, and only in the target locale; other
        locales' values of localized fields are kept. Required checks cover
        the supplied fields only.

        Raises:
            DocumentNotFoundError: No document with this id
        """
        config = self.schema.collection(collection)
        target, fallback = self._request(locale, fallback_locale)
        log = self._log(collection, target)

        async with self.backend.lock(collection, document_id):
            existing = await self.backend.get(collection, document_id)
            if existing is None:
                raise DocumentNotFoundError(collection, document_id)
            stored = self._apply_update(config, existing, data, target, fallback)
            await self.backend.replace(collection, document_id, stored)

        log.info("Updated document", extra={"document_id": document_id, "operation": "update"})
        return await self._present(config.fields, stored, target, fallback, depth)

    async def find(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        locale: str | None = None,
        fallback_locale: str | bool | None = None,
        depth: int | None = None,
        sort: str | list[str] | None = None,
        limit: int | None = None,
        page: int = 1,
    ) -> FindResult:
        """
        Find documents matching a where clause.

        Localized paths without a locale segment filter on the requested
        locale (the default locale under ``all``); filters do not apply
        fallback. Without ``sort``, collections with timestamps are ordered
        by ``createdAt``.

        Args:
            collection: Collection slug
            where: Where clause, see ``QueryTranslator``
            locale: Requested locale, or ``all``
            fallback_locale: Fallback for reads, False or "none" to disable
            depth: Relationship population depth
            sort: Sort paths, ``-`` prefix for descending
            limit: Page size, None or 0 for everything
            page: 1-based page number

        Raises:
            QueryValidationError: Invalid path, operator or paging argument
        """
        config = self.schema.collection(collection)
        target, fallback = self._request(locale, fallback_locale)
        log = self._log(collection, target)

        if page < 1:
            raise QueryValidationError("page must be 1 or greater", {"page": page})
        if limit is not None and limit < 0:
            raise QueryValidationError("limit must not be negative", {"limit": limit})
        limit = limit or None

        query = self.translator.translate(collection, where, target)
        sort_keys = self._sort_keys(config, sort, target)
        bound = await self._bind(query)

        offset = (page - 1) * limit if limit else 0
        result = await self.backend.find(collection, bound, sort_keys, limit, offset)
        docs = await self._present_many(config.fields, result.docs, target, fallback, depth)

        total_pages = math.ceil(result.total / limit) if limit else int(result.total > 0)
        log.debug(f"Found {result.total} documents", extra={"operation": "find"})
        return FindResult(
            docs=docs,
            total_docs=result.total,
            limit=limit,
            page=page,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )

    async def find_by_id(
        self,
        collection: str,
        document_id: str,
        locale: str | None = None,
        fallback_locale: str | bool | None = None,
        depth: int | None = None,
    ) -> dict[str, Any]:
        """
        Get one document resolved for a locale.

        Raises:
            DocumentNotFoundError: No document with this id
        """
        config = self.schema.collection(collection)
        target, fallback = self._request(locale, fallback_locale)

        stored = await self.backend.get(collection, document_id)
        if stored is None:
            raise DocumentNotFoundError(collection, document_id)
        return await self._present(config.fields, stored, target, fallback, depth)

    async def delete(
        self,
        collection: str,
        document_id: str,
        locale: str | None = None,
        fallback_locale: str | bool | None = None,
    ) -> dict[str, Any]:
        """
        Delete a document with every locale's values.

        Returns:
            The deleted document resolved for ``locale``

        Raises:
            DocumentNotFoundError: No document with this id
        """
        config = self.schema.collection(collection)
        target, fallback = self._request(locale, fallback_locale)

        async with self.backend.lock(collection, document_id):
            stored = await self.backend.get(collection, document_id)
            if stored is None:
                raise DocumentNotFoundError(collection, document_id)
            await self.backend.delete(collection, document_id)

        self._log(collection, target).info(
            "Deleted document", extra={"document_id": document_id, "operation": "delete"}
        )
        return self.resolver.resolve(stored, config.fields, target, fallback)

    # =========================================================================
    # Globals
    # =========================================================================

    async def find_global(
        self,
        slug: str,
        locale: str | None = None,
        fallback_locale: str | bool | None = None,
        depth: int | None = None,
    ) -> dict[str, Any]:
        """Get a global resolved for a locale; an unwritten global is empty."""
        config = self.schema.global_config(slug)
        target, fallback = self._request(locale, fallback_locale)

        stored = await self.backend.get(GLOBALS_COLLECTION, slug)
        if stored is None:
            stored = {ID_KEY: slug}
        return await self._present(config.fields, stored, target, fallback, depth)

    async def update_global(
        self,
        slug: str,
        data: dict[str, Any],
        locale: str | None = None,
        fallback_locale: str | bool | None = None,
        depth: int | None = None,
    ) -> dict[str, Any]:
        """Update one locale (or every locale under ``all``) of a global."""
        config = self.schema.global_config(slug)
        target, fallback = self._request(locale, fallback_locale)
        log = self._log(slug, target)

        async with self.backend.lock(GLOBALS_COLLECTION, slug):
            existing = await self.backend.get(GLOBALS_COLLECTION, slug)
            if existing is None:
                base: dict[str, Any] = {ID_KEY: slug}
                if config.timestamps:
                    base[CREATED_AT_KEY] = _now()
                stored = self._apply_update(
                    config, base, self._with_defaults(config.fields, data), target, fallback
                )
                await self.backend.insert(GLOBALS_COLLECTION, stored)
            else:
                stored = self._apply_update(config, existing, data, target, fallback)
                await self.backend.replace(GLOBALS_COLLECTION, slug, stored)

        log.info("Updated global", extra={"document_id": slug, "operation": "update_global"})
        return await self._present(config.fields, stored, target, fallback, depth)

    # =========================================================================
    # Writes
    # =========================================================================

    def _apply_update(
        self,
        config: CollectionConfig,
        existing: dict[str, Any],
        data: dict[str, Any],
        target: str,
        fallback: str | None,
    ) -> dict[str, Any]:
        stored = self.merger.merge(existing, config.fields, target, data)
        if config.timestamps:
            stored[UPDATED_AT_KEY] = _now()
        self._check_required(config.fields, stored, data, target, fallback)
        return stored

    @staticmethod
    def _with_defaults(fields: list[Field], data: dict[str, Any]) -> dict[str, Any]:
        seeded = dict(data)
        for declared in fields:
            if declared.name not in seeded and declared.default_value is not None:
                seeded[declared.name] = copy.deepcopy(declared.default_value)
        return seeded

    def _check_required(
        self,
        fields: list[Field],
        stored: dict[str, Any],
        supplied: dict[str, Any] | None,
        target: str,
        fallback: str | None,
    ) -> None:
        # Writes under ``all`` are checked through the default locale's view.
        check_locale = self.registry.default_locale if target == ALL_LOCALES else target
        view = self.resolver.resolve(stored, fields, check_locale, fallback)
        self.validator.validate(fields, view, supplied, check_locale)

    # =========================================================================
    # Reads
    # =========================================================================

    def _sort_keys(
        self, config: CollectionConfig, sort: str | list[str] | None, locale: str
    ) -> list[SortKey]:
        if sort:
            return self.translator.translate_sort(config.slug, sort, locale)
        if config.timestamps:
            return [SortKey(StoragePath.of(CREATED_AT_KEY))]
        return []

    async def _bind(self, query: StorageQuery | None) -> StorageQuery | None:
        """Replace joins with conditions on the ids of matching related documents."""
        if query is None or isinstance(query, Condition):
            return query
        if isinstance(query, And):
            return And([await self._bind(child) for child in query.children])
        if isinstance(query, Or):
            return Or([await self._bind(child) for child in query.children])
        if isinstance(query, Not):
            return Not(await self._bind(query.child))
        if isinstance(query, ElemMatch):
            return ElemMatch(query.path, await self._bind(query.condition))
        if isinstance(query, Join):
            return await self._bind_join(query)
        raise TypeError(f"Unsupported query node: {type(query).__name__}")

    async def _bind_join(self, join: Join) -> StorageQuery:
        path = join.path.each() if join.has_many else join.path

        if not join.polymorphic:
            target = join.targets[0]
            ids = await self.backend.find_ids(target.collection, await self._bind(target.query))
            return Condition(path, Operator.IN, ids)

        branches: list[StorageQuery] = []
        for target in join.targets:
            ids = await self.backend.find_ids(target.collection, await self._bind(target.query))
            branches.append(
                And(
                    [
                        Condition(StoragePath.of("relationTo"), Operator.EQUALS, target.collection),
                        Condition(StoragePath.of("value"), Operator.IN, ids),
                    ]
                )
            )
        return ElemMatch(path, Or(branches))

    async def _present(
        self,
        fields: list[Field],
        stored: dict[str, Any],
        locale: str,
        fallback: str | None,
        depth: int | None,
    ) -> dict[str, Any]:
        docs = await self._present_many(fields, [stored], locale, fallback, depth)
        return docs[0]

    async def _present_many(
        self,
        fields: list[Field],
        stored_docs: list[dict[str, Any]],
        locale: str,
        fallback: str | None,
        depth: int | None,
    ) -> list[dict[str, Any]]:
        depth = self.config.default_depth if depth is None else depth
        populated: PopulatedDocuments = {}
        if depth > 0:
            populated = await self._populate(fields, stored_docs, locale, fallback, depth)
        return [
            self.resolver.resolve(doc, fields, locale, fallback, populated)
            for doc in stored_docs
        ]

    async def _populate(
        self,
        fields: list[Field],
        stored_docs: list[dict[str, Any]],
        locale: str,
        fallback: str | None,
        depth: int,
    ) -> PopulatedDocuments:
        """Load and resolve every referenced document, ``depth - 1`` deep."""
        references = {
            reference for doc in stored_docs for reference in iter_references(doc, fields)
        }

        populated: PopulatedDocuments = {}
        for collection, ref_id in sorted(references):
            target = await self.backend.get(collection, ref_id)
            if target is None:
                logger.debug(f"Reference {collection}/{ref_id} not found; keeping id")
                continue
            target_fields = self.schema.collection(collection).fields
            populated[(collection, ref_id)] = await self._present(
                target_fields, target, locale, fallback, depth - 1
            )
        return populated
