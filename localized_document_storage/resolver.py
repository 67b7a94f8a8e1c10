"""
Read resolver.

Turns a stored document (localized fields kept as per-locale mappings) into
the shape callers see for one requested locale, or for every locale at
once when the ``all`` sentinel is requested.

Resolution per localized field:
1. ``all``: emit the per-locale mapping of written locales
2. requested locale set (value or explicit empty): use it
3. unset: use the fallback locale's cell; if that is unset too, omit the field
4. fallback disabled: an unset field resolves to None

Groups, array rows, block rows and populated relationships are resolved
recursively with the same locale and fallback.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from .locales import ALL_LOCALES, LocaleRegistry
from .schema import (
    BLOCK_TYPE_KEY,
    DOCUMENT_SYSTEM_KEYS,
    ROW_SYSTEM_KEYS,
    Field,
    FieldType,
)
from .values import (
    CellState,
    DirectReference,
    LocalizedValueStore,
    PolymorphicReference,
    parse_reference,
)

logger = logging.getLogger(__name__)

# (collection slug, document id) -> document already resolved for the request
PopulatedDocuments = dict[tuple[str, str], dict[str, Any]]


@dataclass
class _ResolveContext:
    locale: str
    fallback_locale: str | None
    populated: PopulatedDocuments = field(default_factory=dict)


class ReadResolver:
    """Resolves stored documents to a locale view."""

    def __init__(self, registry: LocaleRegistry):
        self.registry = registry

    def resolve(
        self,
        document: dict[str, Any],
        fields: list[Field],
        locale: str,
        fallback_locale: str | None = None,
        populated: PopulatedDocuments | None = None,
    ) -> dict[str, Any]:
        """Resolve a stored document.

        Args:
            document: Stored document
            fields: Declared fields of its collection or global
            locale: Registered locale code or ALL_LOCALES
            fallback_locale: Locale consulted for unset values, None to disable
            populated: Relationship targets to substitute for their ids

        Returns:
            New dict in the requested locale's shape
        """
        ctx = _ResolveContext(locale, fallback_locale, populated or {})
        resolved = {key: document[key] for key in DOCUMENT_SYSTEM_KEYS if key in document}
        resolved.update(self._resolve_fields(fields, document, ctx, inside_localized=False))
        return resolved

    def _resolve_fields(
        self,
        fields: list[Field],
        data: dict[str, Any],
        ctx: _ResolveContext,
        inside_localized: bool,
    ) -> dict[str, Any]:
        resolved: dict[str, Any] = {}
        for declared in fields:
            if declared.localized and not inside_localized:
                present, value = self._resolve_localized(declared, data.get(declared.name), ctx)
                if present:
                    resolved[declared.name] = value
            elif declared.name in data:
                resolved[declared.name] = self._resolve_value(
                    declared, data[declared.name], ctx, inside_localized
                )
        return resolved

    def _resolve_localized(
        self, declared: Field, stored: Any, ctx: _ResolveContext
    ) -> tuple[bool, Any]:
        store = LocalizedValueStore(
            stored, self.registry.locales, self.registry.default_locale
        )

        if ctx.locale == ALL_LOCALES:
            if not len(store):
                return False, None
            return True, {
                code: None if value is None else self._resolve_value(declared, value, ctx, True)
                for code, value in store.all_entries().items()
            }

        cell = store.cell(ctx.locale)
        if not cell.is_set and ctx.fallback_locale and ctx.fallback_locale != ctx.locale:
            cell = store.cell(ctx.fallback_locale)

        if cell.state is CellState.VALUE:
            return True, self._resolve_value(declared, cell.value, ctx, True)
        if cell.state is CellState.EMPTY or ctx.fallback_locale is None:
            return True, None
        return False, None

    def _resolve_value(
        self, declared: Field, value: Any, ctx: _ResolveContext, inside_localized: bool
    ) -> Any:
        if declared.type is FieldType.GROUP:
            if not isinstance(value, dict):
                return value
            return self._resolve_fields(declared.fields, value, ctx, inside_localized)

        if declared.type is FieldType.ARRAY:
            if not isinstance(value, list):
                return value
            return [
                self._resolve_row(declared.fields, row, ctx, inside_localized)
                for row in value
                if isinstance(row, dict)
            ]

        if declared.type is FieldType.BLOCKS:
            if not isinstance(value, list):
                return value
            rows = []
            for row in value:
                if not isinstance(row, dict):
                    continue
                block = declared.block(row.get(BLOCK_TYPE_KEY))
                if block is None:
                    logger.warning(
                        f"Dropping row of unknown block type {row.get(BLOCK_TYPE_KEY)!r} "
                        f"in {declared.name}"
                    )
                    continue
                rows.append(self._resolve_row(block.fields, row, ctx, inside_localized))
            return rows

        if declared.type is FieldType.RELATIONSHIP:
            if declared.has_many:
                if not isinstance(value, list):
                    return value
                return [self._resolve_reference(declared, item, ctx) for item in value]
            return self._resolve_reference(declared, value, ctx)

        return value

    def _resolve_row(
        self,
        fields: list[Field],
        row: dict[str, Any],
        ctx: _ResolveContext,
        inside_localized: bool,
    ) -> dict[str, Any]:
        resolved = {key: row[key] for key in ROW_SYSTEM_KEYS if key in row}
        resolved.update(self._resolve_fields(fields, row, ctx, inside_localized))
        return resolved

    def _resolve_reference(self, declared: Field, value: Any, ctx: _ResolveContext) -> Any:
        reference = parse_reference(value, declared.is_polymorphic)
        if reference is None:
            return value

        if isinstance(reference, PolymorphicReference):
            target = ctx.populated.get((reference.relation_to, reference.id))
            return {
                "relationTo": reference.relation_to,
                "value": target if target is not None else reference.id,
            }

        target = ctx.populated.get((declared.targets[0], reference.id))
        return target if target is not None else reference.id


def iter_references(
    document: dict[str, Any],
    fields: list[Field],
    inside_localized: bool = False,
) -> Iterator[tuple[str, str]]:
    """Yield ``(collection, id)`` for every reference in a stored document.

    Walks every locale's slice, so the result covers any view of the document.
    """
    for declared in fields:
        if declared.name not in document:
            continue
        value = document[declared.name]
        if declared.localized and not inside_localized:
            if isinstance(value, dict):
                for slice_value in value.values():
                    yield from _iter_value_references(declared, slice_value, True)
        else:
            yield from _iter_value_references(declared, value, inside_localized)


def _iter_value_references(
    declared: Field, value: Any, inside_localized: bool
) -> Iterator[tuple[str, str]]:
    if value is None:
        return

    if declared.type is FieldType.GROUP and isinstance(value, dict):
        yield from iter_references(value, declared.fields, inside_localized)
    elif declared.type is FieldType.ARRAY and isinstance(value, list):
        for row in value:
            if isinstance(row, dict):
                yield from iter_references(row, declared.fields, inside_localized)
    elif declared.type is FieldType.BLOCKS and isinstance(value, list):
        for row in value:
            if isinstance(row, dict):
                block = declared.block(row.get(BLOCK_TYPE_KEY))
                if block is not None:
                    yield from iter_references(row, block.fields, inside_localized)
    elif declared.type is FieldType.RELATIONSHIP:
        items = value if declared.has_many and isinstance(value, list) else [value]
        for item in items:
            reference = parse_reference(item, declared.is_polymorphic)
            if isinstance(reference, PolymorphicReference):
                yield reference.relation_to, reference.id
            elif isinstance(reference, DirectReference):
                yield declared.targets[0], reference.id
