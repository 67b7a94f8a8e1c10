"""
Write merger.

Merges incoming data for one locale (or for every locale, under the ``all``
sentinel) into a stored document without touching other locales' values.

Rules for a localized field:
- ``None`` clears the target locale; reads fall back again
- ``EMPTY`` stores an explicit empty that suppresses fallback
- ``[]``, ``""`` and every other value are stored for the target locale

Array and block rows are matched to stored rows by ``id`` so that values
of the locales not being written stay with their row, including when the
payload reorders rows.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any

from .exceptions import InvalidLocaleError, ValidationError
from .id_utils import row_id
from .locales import ALL_LOCALES, LocaleRegistry
from .schema import (
    BLOCK_TYPE_KEY,
    DOCUMENT_SYSTEM_KEYS,
    ID_KEY,
    SCALAR_TYPES,
    Field,
    FieldType,
)
from .validation import normalize_scalar
from .values import EMPTY, LocalizedValueStore, parse_reference

logger = logging.getLogger(__name__)

# Types whose plain values are never objects: a dict under ``all`` can
# only be a locale mapping.
_NON_OBJECT_TYPES = (SCALAR_TYPES - {FieldType.JSON}) | {FieldType.ARRAY, FieldType.BLOCKS}


class WriteMerger:
    """Merges partial or full data into stored documents."""

    def __init__(
        self,
        registry: LocaleRegistry,
        id_factory: Callable[[], str] = row_id,
    ):
        self.registry = registry
        self._new_row_id = id_factory

    def merge(
        self,
        document: dict[str, Any],
        fields: list[Field],
        locale: str,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge data into a document for one locale or ALL_LOCALES.

        Args:
            document: Stored document (not modified)
            fields: Declared fields of its collection or global
            locale: Target locale code or ALL_LOCALES
            data: Incoming field values; keys that are not declared are ignored

        Returns:
            The new stored document

        Raises:
            InvalidLocaleError: Unregistered target locale or mapping key
            ValidationError: A value does not fit its field
        """
        if locale != ALL_LOCALES:
            self.registry.validate(locale)

        merged = {key: document[key] for key in DOCUMENT_SYSTEM_KEYS if key in document}
        merged.update(self._merge_fields(fields, document, data, locale, False, ""))
        return merged

    def _merge_fields(
        self,
        fields: list[Field],
        existing: dict[str, Any],
        incoming: dict[str, Any],
        locale: str,
        inside_localized: bool,
        path: str,
    ) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for declared in fields:
            name = declared.name
            if name not in incoming:
                if name in existing:
                    result[name] = copy.deepcopy(existing[name])
                continue

            field_path = f"{path}{name}"
            if declared.localized and not inside_localized:
                stored = self._merge_localized(
                    declared, existing.get(name), incoming[name], locale, field_path
                )
                if stored is not None:
                    result[name] = stored
            else:
                result[name] = self._merge_value(
                    declared, existing.get(name), incoming[name], locale, inside_localized, field_path
                )
        return result

    def _merge_localized(
        self,
        declared: Field,
        stored: Any,
        value: Any,
        locale: str,
        path: str,
    ) -> dict[str, Any] | None:
        store = LocalizedValueStore(
            copy.deepcopy(stored), self.registry.locales, self.registry.default_locale
        )

        if locale == ALL_LOCALES:
            for code, locale_value in self._locale_entries(declared, value, path):
                self._apply_locale(store, declared, code, locale_value, path)
        else:
            self._apply_locale(store, declared, locale, value, path)

        return store.to_storage()

    def _locale_entries(
        self, declared: Field, value: Any, path: str
    ) -> list[tuple[str, Any]]:
        """Split an ``all`` payload into per-locale values."""
        if isinstance(value, dict) and value:
            unknown = [key for key in value if not self.registry.is_valid_locale(key)]
            if not unknown:
                return list(value.items())
            if declared.type in _NON_OBJECT_TYPES:
                raise InvalidLocaleError(unknown[0], self.registry.locales)

        logger.debug(f"Applying non-mapping value of {path} to the default locale")
        return [(self.registry.default_locale, value)]

    def _apply_locale(
        self,
        store: LocalizedValueStore,
        declared: Field,
        locale: str,
        value: Any,
        path: str,
    ) -> None:
        if value is None:
            store.clear(locale)
        elif value is EMPTY:
            store.set(locale, EMPTY)
        else:
            store.set(
                locale,
                self._merge_value(declared, store.get(locale), value, locale, True, path),
            )

    def _merge_value(
        self,
        declared: Field,
        old: Any,
        value: Any,
        locale: str,
        inside_localized: bool,
        path: str,
    ) -> Any:
        if value is None or value is EMPTY:
            return None

        if declared.type is FieldType.GROUP:
            if not isinstance(value, dict):
                raise ValidationError(path, "expected an object", repr(value))
            return self._merge_fields(
                declared.fields,
                old if isinstance(old, dict) else {},
                value,
                locale,
                inside_localized,
                f"{path}.",
            )

        if declared.has_rows:
            if not isinstance(value, list):
                raise ValidationError(path, "expected a list of rows", repr(value))
            return self._merge_rows(
                declared, old if isinstance(old, list) else [], value, locale, inside_localized, path
            )

        if declared.type is FieldType.RELATIONSHIP:
            return self._normalize_relationship(declared, value, path)

        return copy.deepcopy(normalize_scalar(declared, value, path))

    def _merge_rows(
        self,
        declared: Field,
        old_rows: list[Any],
        rows: list[Any],
        locale: str,
        inside_localized: bool,
        path: str,
    ) -> list[dict[str, Any]]:
        old_by_id = {
            str(row[ID_KEY]): row
            for row in old_rows
            if isinstance(row, dict) and row.get(ID_KEY) is not None
        }
        claimed = {
            str(row[ID_KEY])
            for row in rows
            if isinstance(row, dict) and row.get(ID_KEY) is not None
        }

        merged_rows = []
        for index, row in enumerate(rows):
            row_path = f"{path}.{index}"
            if not isinstance(row, dict):
                raise ValidationError(row_path, "expected an object", repr(row))

            previous = self._previous_row(row, index, old_rows, old_by_id, claimed)

            if declared.type is FieldType.BLOCKS:
                block_type = row.get(BLOCK_TYPE_KEY)
                if block_type is None and previous is not None:
                    block_type = previous.get(BLOCK_TYPE_KEY)
                block = declared.block(block_type)
                if block is None:
                    raise ValidationError(
                        f"{row_path}.{BLOCK_TYPE_KEY}", "unknown block type", str(block_type)
                    )
                if previous is not None and previous.get(BLOCK_TYPE_KEY) != block.slug:
                    previous = None
                row_fields = block.fields
            else:
                block = None
                row_fields = declared.fields

            base = previous or {}
            if row.get(ID_KEY) is not None:
                identity = str(row[ID_KEY])
            else:
                identity = base.get(ID_KEY) or self._new_row_id()

            merged_row: dict[str, Any] = {ID_KEY: identity}
            if block is not None:
                merged_row[BLOCK_TYPE_KEY] = block.slug
            merged_row.update(
                self._merge_fields(row_fields, base, row, locale, inside_localized, f"{row_path}.")
            )
            merged_rows.append(merged_row)

        return merged_rows

    @staticmethod
    def _previous_row(
        row: dict[str, Any],
        index: int,
        old_rows: list[Any],
        old_by_id: dict[str, Any],
        claimed: set[str],
    ) -> dict[str, Any] | None:
        """Find the stored row an incoming row updates.

        Rows with an id match by id. Rows without one take the stored row at
        the same position, unless another incoming row claims it by id.
        """
        if row.get(ID_KEY) is not None:
            return old_by_id.get(str(row[ID_KEY]))
        if index >= len(old_rows) or not isinstance(old_rows[index], dict):
            return None
        candidate = old_rows[index]
        if candidate.get(ID_KEY) is not None and str(candidate[ID_KEY]) in claimed:
            return None
        return candidate

    def _normalize_relationship(self, declared: Field, value: Any, path: str) -> Any:
        if declared.has_many:
            if not isinstance(value, list):
                raise ValidationError(path, "expected a list of references", repr(value))
            return [
                self._normalize_reference(declared, item, f"{path}.{index}")
                for index, item in enumerate(value)
            ]
        return self._normalize_reference(declared, value, path)

    @staticmethod
    def _normalize_reference(declared: Field, value: Any, path: str) -> Any:
        reference = parse_reference(value, declared.is_polymorphic)
        if reference is None:
            raise ValidationError(path, "invalid relationship value", repr(value))
        if declared.is_polymorphic and reference.relation_to not in declared.targets:
            raise ValidationError(
                path,
                f"relationTo must be one of {declared.targets}",
                reference.relation_to,
            )
        return reference.to_storage()
