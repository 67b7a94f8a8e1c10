"""
Query translator.

Rewrites caller filters and sort orders, written against field paths, into
storage queries over stored paths. Localized fields get their locale key
inserted, array and block steps become existential list steps, and paths
that continue through a relationship become joins on the related
collection.

Where clause shape::

    {
        "title": {"equals": "Hello"},
        "or": [
            {"items.text": {"like": "first"}},
            {"author.name.es": {"exists": True}},
        ],
    }

Several operators under one path and several paths in one mapping are
combined with AND.
"""

from __future__ import annotations

import logging
from typing import Any

from ..exceptions import (
    InvalidFieldPathError,
    InvalidOperatorError,
    QueryValidationError,
)
from ..locales import LocaleRegistry
from ..schema import Field, FieldType, Schema
from ..values import reference_id
from .paths import FieldPath, FieldPathParser
from .types import (
    And,
    Condition,
    Join,
    JoinTarget,
    Not,
    Operator,
    Or,
    SortKey,
    StoragePath,
    StorageQuery,
)

logger = logging.getLogger(__name__)

_LOGICAL_KEYS = ("and", "or")

_TRUE_TOKENS = ("true", "1", "yes")
_FALSE_TOKENS = ("false", "0", "no")


class QueryTranslator:
    """Translates field-path filters into storage queries."""

    def __init__(self, schema: Schema, registry: LocaleRegistry):
        self.schema = schema
        self.registry = registry
        self.parser = FieldPathParser(registry)

    def translate(
        self,
        collection: str,
        where: dict[str, Any] | None,
        locale: str | None,
    ) -> StorageQuery | None:
        """Translate a where clause for a collection.

        Args:
            collection: Collection slug
            where: Where clause, None or empty for no filter
            locale: Requested locale or ALL_LOCALES; localized paths without
                a locale segment address this locale (the default locale
                under ALL_LOCALES)

        Returns:
            Storage query, or None when nothing is filtered

        Raises:
            CollectionNotFoundError: Unknown collection
            InvalidFieldPathError: A path does not match the schema
            InvalidOperatorError: Unknown operator
        """
        fields = self.schema.collection(collection).fields
        return self._translate_where(fields, where, locale)

    def translate_condition(
        self,
        collection: str,
        path: str,
        operator: str,
        value: Any,
        locale: str | None,
    ) -> StorageQuery:
        """Translate one ``path: {operator: value}`` condition."""
        fields = self.schema.collection(collection).fields
        return self._translate_condition(fields, path, operator, value, locale)

    def translate_sort(
        self,
        collection: str,
        sort: str | list[str] | None,
        locale: str | None,
    ) -> list[SortKey]:
        """Translate a sort specification.

        ``sort`` is a field path, a comma-separated list of them or a list;
        a leading ``-`` sorts descending. Sorting through arrays, blocks,
        has-many relationships or into related documents is rejected.
        """
        if not sort:
            return []
        tokens = sort.split(",") if isinstance(sort, str) else list(sort)
        fields = self.schema.collection(collection).fields

        keys = []
        for token in tokens:
            token = token.strip()
            if not token:
                continue
            descending = token.startswith("-")
            name = token[1:] if descending else token
            field_path = self.parser.parse(fields, name, locale)
            if field_path.crosses_relationship:
                raise InvalidFieldPathError(name, "cannot sort by a related document's field")
            path = self._relationship_value_path(field_path, self._storage_path(field_path))
            if path.has_each:
                raise InvalidFieldPathError(name, "cannot sort by a field inside a list")
            keys.append(SortKey(path, descending))
        return keys

    # -------------------------------------------------------------------------
    # Where clauses
    # -------------------------------------------------------------------------

    def _translate_where(
        self,
        fields: list[Field],
        where: Any,
        locale: str | None,
    ) -> StorageQuery | None:
        if not where:
            return None
        if not isinstance(where, dict):
            raise QueryValidationError("Where clause must be a mapping", {"where": repr(where)})

        clauses: list[StorageQuery] = []
        for key, clause in where.items():
            logical = key.lower()
            if logical in _LOGICAL_KEYS:
                if not isinstance(clause, list):
                    raise QueryValidationError(
                        f"{key!r} expects a list of where clauses", {"key": key}
                    )
                children = [
                    child
                    for child in (self._translate_where(fields, sub, locale) for sub in clause)
                    if child is not None
                ]
                if children:
                    clauses.append(And(children) if logical == "and" else Or(children))
                continue

            if not isinstance(clause, dict):
                raise QueryValidationError(
                    f"Conditions for {key!r} must be a mapping of operators", {"path": key}
                )
            for operator, value in clause.items():
                clauses.append(self._translate_condition(fields, key, operator, value, locale))

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return And(clauses)

    def _translate_condition(
        self,
        fields: list[Field],
        path: str,
        operator: str,
        value: Any,
        locale: str | None,
    ) -> StorageQuery:
        op = _parse_operator(operator, path)
        value = _normalize_operand(op, value, path)
        field_path = self.parser.parse(fields, path, locale)

        if field_path.crosses_relationship:
            join = self._join(field_path, op.positive, value, locale)
            return Not(join) if op.is_negated else join

        storage_path = self._storage_path(field_path)
        terminal = field_path.terminal
        if (
            terminal is not None
            and terminal.type is FieldType.RELATIONSHIP
            and field_path.system_key is None
        ):
            storage_path = self._relationship_value_path(field_path, storage_path)
            value = _reference_operand(op, value)

        return _condition(storage_path, op, value)

    def _storage_path(self, field_path: FieldPath) -> StoragePath:
        """Stored location of a parsed path, up to its last declared field."""
        path = StoragePath()
        last = len(field_path.steps) - 1
        for position, step in enumerate(field_path.steps):
            path = path.key(step.field.name)
            if step.locale is not None:
                path = path.key(step.locale)
            descends = position < last or field_path.system_key is not None
            if step.field.has_rows and descends:
                path = path.each()
        if field_path.system_key is not None:
            path = path.key(field_path.system_key)
        return path

    @staticmethod
    def _relationship_value_path(field_path: FieldPath, path: StoragePath) -> StoragePath:
        terminal = field_path.terminal
        if terminal is None or terminal.type is not FieldType.RELATIONSHIP:
            return path
        if terminal.has_many:
            path = path.each()
        if terminal.is_polymorphic:
            path = path.key(field_path.polymorphic_key or "value")
        return path

    def _join(
        self,
        field_path: FieldPath,
        op: Operator,
        value: Any,
        locale: str | None,
    ) -> Join:
        relationship = field_path.terminal
        if relationship is None:
            raise InvalidFieldPathError(field_path.raw, "path does not name a relationship")
        sub_path = ".".join(field_path.relation_tail)
        hop_locale = field_path.hop_locale(locale)

        targets = []
        for slug in relationship.targets:
            target_fields = self.schema.collection(slug).fields
            try:
                query = self._translate_condition(
                    target_fields, sub_path, op.value, value, hop_locale
                )
            except InvalidFieldPathError:
                if relationship.is_polymorphic:
                    logger.debug(f"{slug} does not declare {sub_path}; skipped for {field_path.raw}")
                    continue
                raise
            targets.append(JoinTarget(slug, query))

        if not targets:
            raise InvalidFieldPathError(
                field_path.raw, f"no related collection declares {sub_path!r}"
            )

        return Join(
            path=self._storage_path(field_path),
            targets=targets,
            has_many=relationship.has_many,
            polymorphic=relationship.is_polymorphic,
        )


def _parse_operator(operator: str, path: str) -> Operator:
    try:
        return Operator(operator)
    except ValueError:
        raise InvalidOperatorError(str(operator), path) from None


def _normalize_operand(op: Operator, value: Any, path: str) -> Any:
    if op.positive is Operator.IN:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return list(value)
        raise QueryValidationError(
            f"{op.value!r} on {path!r} expects a list", {"path": path, "value": repr(value)}
        )

    if op is Operator.EXISTS:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in _TRUE_TOKENS + _FALSE_TOKENS:
            return value.lower() in _TRUE_TOKENS
        raise QueryValidationError(
            f"'exists' on {path!r} expects a boolean", {"path": path, "value": repr(value)}
        )

    if op in (Operator.CONTAINS, Operator.LIKE) and not isinstance(value, str):
        raise QueryValidationError(
            f"{op.value!r} on {path!r} expects a string", {"path": path, "value": repr(value)}
        )

    return value


def _reference_operand(op: Operator, value: Any) -> Any:
    """Reduce populated documents in an operand to their ids."""
    if op.positive is Operator.IN:
        return [reference_id(item) if isinstance(item, dict) else item for item in value]
    if isinstance(value, dict):
        return reference_id(value)
    return value


def _condition(path: StoragePath, op: Operator, value: Any) -> StorageQuery:
    """Build a condition using only positive operators."""
    if op is Operator.EXISTS:
        condition = Condition(path, Operator.EXISTS, True)
        return condition if value else Not(condition)
    if op.is_negated:
        return Not(Condition(path, op.positive, value))
    return Condition(path, op, value)
