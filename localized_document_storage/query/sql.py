"""
SQLite query builder for storage queries.

Compiles bound storage queries into parameterized SQLite statements over
the ``documents`` table, whose ``data`` column holds each stored document
as JSON. Supports:
- Object member paths via ``json_extract``
- Existential list steps via correlated ``json_each`` subqueries
- Negation with SQL NULL treated as "no match"
- Value-type guards, so text operators never search serialized arrays or objects
- Ordering and pagination, plus a matching COUNT query

Usage:
    builder = SQLiteQueryBuilder()
    query = builder.build("posts", storage_query, sort_keys, limit=10)
    # Execute: await conn.execute(query.sql, query.parameters)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .types import (
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

_COMPARISONS = {
    Operator.GREATER_THAN: ">",
    Operator.GREATER_THAN_EQUAL: ">=",
    Operator.LESS_THAN: "<",
    Operator.LESS_THAN_EQUAL: "<=",
}

_TEXT_KINDS = ("text",)
_NUMBER_KINDS = ("integer", "real", "true", "false")

LOWER_FUNCTION = "unicode_lower"


@dataclass
class SQLQuery:
    """A parameterized SQLite statement.

    Attributes:
        sql: Statement with ``?`` placeholders
        parameters: Values bound to the placeholders, in order
    """

    sql: str
    parameters: list[Any] = field(default_factory=list)

    def __str__(self) -> str:
        """Return formatted query for debugging."""
        return f"{self.sql}\nParameters: {self.parameters!r}"


@dataclass
class _Expr:
    """SQL fragment and the parameters of its placeholders."""

    sql: str
    parameters: list[Any] = field(default_factory=list)
    # JSON type of the value (json_type / json_each.type), None at the root
    kind: _Expr | None = None


def json_path(keys: list[str]) -> str:
    """SQLite JSON path for a list of object keys."""
    return "$" + "".join(f'."{key}"' for key in keys)


class SQLiteQueryBuilder:
    """Builds SQLite statements from storage queries."""

    TABLE = "documents"
    DATA = "d.data"

    def __init__(self) -> None:
        self._alias_counter = 0

    def _next_alias(self) -> str:
        self._alias_counter += 1
        return f"e{self._alias_counter}"

    def _reset_aliases(self) -> None:
        self._alias_counter = 0

    def build(
        self,
        collection: str,
        query: StorageQuery | None,
        sort: list[SortKey] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> SQLQuery:
        """Build a SELECT returning the ``data`` column of matching documents."""
        where = self._where(collection, query)
        sql = f"SELECT d.data FROM {self.TABLE} AS d WHERE {where.sql}"
        parameters = list(where.parameters)

        if sort:
            terms = []
            for key in sort:
                terms.append(f"json_extract({self.DATA}, ?) {'DESC' if key.descending else 'ASC'}")
                parameters.append(json_path(key.path.split_each()[0]))
            terms.append("d.rowid ASC")
            sql += " ORDER BY " + ", ".join(terms)
        else:
            sql += " ORDER BY d.rowid ASC"

        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            parameters.extend([limit, offset])
        elif offset:
            sql += " LIMIT -1 OFFSET ?"
            parameters.append(offset)

        return SQLQuery(sql, parameters)

    def build_count(self, collection: str, query: StorageQuery | None) -> SQLQuery:
        """Build a COUNT over matching documents."""
        where = self._where(collection, query)
        return SQLQuery(
            f"SELECT COUNT(*) FROM {self.TABLE} AS d WHERE {where.sql}",
            list(where.parameters),
        )

    def build_ids(self, collection: str, query: StorageQuery | None) -> SQLQuery:
        """Build a SELECT of matching document ids."""
        where = self._where(collection, query)
        return SQLQuery(
            f"SELECT d.id FROM {self.TABLE} AS d WHERE {where.sql}",
            list(where.parameters),
        )

    def compile(self, query: StorageQuery) -> SQLQuery:
        """Compile a storage query into a boolean SQL expression over ``d.data``."""
        self._reset_aliases()
        expr = self._compile(query, _Expr(self.DATA))
        return SQLQuery(expr.sql, expr.parameters)

    def _where(self, collection: str, query: StorageQuery | None) -> _Expr:
        self._reset_aliases()
        if query is None:
            return _Expr("d.collection = ?", [collection])
        condition = self._compile(query, _Expr(self.DATA))
        return _Expr(f"d.collection = ? AND ({condition.sql})", [collection, *condition.parameters])

    # -------------------------------------------------------------------------
    # Compilation
    # -------------------------------------------------------------------------

    def _compile(self, query: StorageQuery, base: _Expr) -> _Expr:
        if isinstance(query, Condition):
            return self._scoped(
                base,
                query.path,
                lambda leaf: self._predicate(leaf, query.operator, query.value),
            )
        if isinstance(query, And):
            return self._join_children(query.children, " AND ", "1", base)
        if isinstance(query, Or):
            return self._join_children(query.children, " OR ", "0", base)
        if isinstance(query, Not):
            child = self._compile(query.child, base)
            return _Expr(f"NOT COALESCE(({child.sql}), 0)", child.parameters)
        if isinstance(query, ElemMatch):
            return self._scoped(base, query.path, lambda element: self._compile(query.condition, element))
        if isinstance(query, Join):
            raise ValueError("Join must be bound to related ids before compiling")
        raise TypeError(f"Unsupported query node: {type(query).__name__}")

    def _join_children(
        self, children: list[StorageQuery], operator: str, empty: str, base: _Expr
    ) -> _Expr:
        if not children:
            return _Expr(empty)
        compiled = [self._compile(child, base) for child in children]
        return _Expr(
            "(" + operator.join(f"({part.sql})" for part in compiled) + ")",
            [param for part in compiled for param in part.parameters],
        )

    def _scoped(self, base: _Expr, path: StoragePath, body) -> _Expr:
        """Apply ``body`` to the value(s) at a path.

        Without list steps the body receives a single ``json_extract``.
        Each list step adds a ``json_each`` source to an EXISTS subquery so
        that the body holds for at least one element.
        """
        groups = path.split_each()
        if len(groups) == 1:
            return body(self._extract(base, groups[0]))

        sources: list[str] = []
        source_params: list[Any] = []
        guards: list[str] = []
        guard_params: list[Any] = []
        current = base
        for keys in groups[:-1]:
            alias = self._next_alias()
            sources.append(f"json_each({current.sql}, ?) AS {alias}")
            source_params.extend([*current.parameters, json_path(keys)])
            guards.append(f"json_type({current.sql}, ?) = 'array'")
            guard_params.extend([*current.parameters, json_path(keys)])
            current = _Expr(f"{alias}.value", kind=_Expr(f"{alias}.type"))

        inner = body(self._extract(current, groups[-1]))
        sql = (
            f"EXISTS (SELECT 1 FROM {', '.join(sources)} "
            f"WHERE {' AND '.join(guards)} AND ({inner.sql}))"
        )
        return _Expr(sql, [*source_params, *guard_params, *inner.parameters])

    @staticmethod
    def _extract(base: _Expr, keys: list[str]) -> _Expr:
        if not keys:
            return base
        path = json_path(keys)
        return _Expr(
            f"json_extract({base.sql}, ?)",
            [*base.parameters, path],
            kind=_Expr(f"json_type({base.sql}, ?)", [*base.parameters, path]),
        )

    def _predicate(self, leaf: _Expr, op: Operator, value: Any) -> _Expr:
        if op is Operator.EQUALS:
            if value is None:
                return _Expr(f"{leaf.sql} IS NULL", leaf.parameters)
            return self._equals(leaf, value)

        if op is Operator.IN:
            parts = []
            params: list[Any] = []
            for item in value:
                part = self._equals(leaf, item) if item is not None else _Expr(
                    f"{leaf.sql} IS NULL", leaf.parameters
                )
                parts.append(part.sql)
                params.extend(part.parameters)
            if not parts:
                return _Expr("0")
            return _Expr("(" + " OR ".join(parts) + ")", params)

        if op is Operator.EXISTS:
            return _Expr(f"{leaf.sql} IS NOT NULL", leaf.parameters)

        if op is Operator.CONTAINS:
            return self._like(leaf, [value])

        if op is Operator.LIKE:
            return self._like(leaf, value.split())

        if op in _COMPARISONS:
            if value is None:
                return _Expr("0")
            return self._compare(leaf, _COMPARISONS[op], value)

        raise ValueError(f"Operator {op.value!r} must be rewritten before compiling")

    @classmethod
    def _compare(cls, leaf: _Expr, operator: str, value: Any) -> _Expr:
        # Text only compares with text and numbers with numbers; arrays and
        # objects, which json_extract returns as JSON text, never match.
        kind = cls._kind_in(leaf, _TEXT_KINDS if isinstance(value, str) else _NUMBER_KINDS)
        return _Expr(
            f"({leaf.sql} {operator} ? AND {kind.sql})",
            [*leaf.parameters, value, *kind.parameters],
        )

    @classmethod
    def _equals(cls, leaf: _Expr, value: Any) -> _Expr:
        return cls._compare(leaf, "=", value)

    @classmethod
    def _like(cls, leaf: _Expr, words: list[str]) -> _Expr:
        kind = cls._kind_in(leaf, _TEXT_KINDS)
        parts = [kind.sql]
        params = list(kind.parameters)
        for word in words:
            parts.append(f"{LOWER_FUNCTION}({leaf.sql}) LIKE ? ESCAPE '\\'")
            params.extend([*leaf.parameters, f"%{_escape_like(word.lower())}%"])
        return _Expr("(" + " AND ".join(parts) + ")", params)

    @staticmethod
    def _kind_in(leaf: _Expr, kinds: tuple[str, ...]) -> _Expr:
        kind = leaf.kind or _Expr(f"json_type({leaf.sql})", leaf.parameters)
        listed = ", ".join(f"'{name}'" for name in kinds)
        return _Expr(f"{kind.sql} IN ({listed})", kind.parameters)


def unicode_lower(value: Any) -> Any:
    """Lower-case text the way Python does; SQLite's lower() is ASCII only."""
    return value.lower() if isinstance(value, str) else value


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
