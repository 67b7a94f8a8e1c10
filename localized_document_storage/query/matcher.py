"""
In-process evaluation of storage queries.

Used by the memory and local file backends. Semantics mirror the SQLite
builder: list steps are existential, a missing key reads as null, and
sorting puts nulls first, then numbers, then strings.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from typing import Any

from .types import (
    And,
    Condition,
    Each,
    ElemMatch,
    Join,
    Not,
    Operator,
    Or,
    SortKey,
    StoragePath,
    StorageQuery,
)


def walk(value: Any, path: StoragePath) -> Iterator[Any]:
    """Yield every value found at a path; a missing key yields None."""
    yield from _walk(value, path.segments, 0)


def _walk(value: Any, segments: tuple, index: int) -> Iterator[Any]:
    if index == len(segments):
        yield value
        return
    segment = segments[index]
    if isinstance(segment, Each):
        if isinstance(value, list):
            for item in value:
                yield from _walk(item, segments, index + 1)
        return
    child = value.get(segment.name) if isinstance(value, dict) else None
    yield from _walk(child, segments, index + 1)


def matches(document: dict[str, Any], query: StorageQuery | None) -> bool:
    """Evaluate a bound storage query against a stored document."""
    if query is None:
        return True
    if isinstance(query, Condition):
        return any(_compare(query.operator, leaf, query.value) for leaf in walk(document, query.path))
    if isinstance(query, And):
        return all(matches(document, child) for child in query.children)
    if isinstance(query, Or):
        return any(matches(document, child) for child in query.children)
    if isinstance(query, Not):
        return not matches(document, query.child)
    if isinstance(query, ElemMatch):
        return any(
            isinstance(element, dict) and matches(element, query.condition)
            for element in walk(document, query.path)
        )
    if isinstance(query, Join):
        raise ValueError("Join must be bound to related ids before evaluation")
    raise TypeError(f"Unsupported query node: {type(query).__name__}")


def _compare(op: Operator, leaf: Any, operand: Any) -> bool:
    if op is Operator.EQUALS:
        return _equal(leaf, operand)
    if op is Operator.IN:
        return any(_equal(leaf, item) for item in operand)
    if op is Operator.EXISTS:
        return leaf is not None
    if op is Operator.CONTAINS:
        return isinstance(leaf, str) and operand.lower() in leaf.lower()
    if op is Operator.LIKE:
        if not isinstance(leaf, str):
            return False
        text = leaf.lower()
        return all(word in text for word in operand.lower().split())
    if op in _ORDERING:
        if leaf is None or operand is None:
            return False
        try:
            return _ORDERING[op](leaf, operand)
        except TypeError:
            return False
    raise ValueError(f"Operator {op.value!r} must be rewritten before evaluation")


def _equal(leaf: Any, operand: Any) -> bool:
    if operand is None:
        return leaf is None
    if isinstance(leaf, str) != isinstance(operand, str):
        return False
    return leaf == operand


_ORDERING = {
    Operator.GREATER_THAN: lambda a, b: a > b,
    Operator.GREATER_THAN_EQUAL: lambda a, b: a >= b,
    Operator.LESS_THAN: lambda a, b: a < b,
    Operator.LESS_THAN_EQUAL: lambda a, b: a <= b,
}


def _sort_token(value: Any) -> tuple:
    if value is None:
        return (0, 0)
    if isinstance(value, (bool, int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, json.dumps(value, sort_keys=True))


def sort_documents(
    documents: Iterable[dict[str, Any]], sort: list[SortKey]
) -> list[dict[str, Any]]:
    """Sort documents by storage paths; ties keep their input order."""
    ordered = list(documents)
    for key in reversed(sort):
        ordered.sort(
            key=lambda doc, path=key.path: _sort_token(next(walk(doc, path), None)),
            reverse=key.descending,
        )
    return ordered


def apply_query(
    documents: Iterable[dict[str, Any]],
    query: StorageQuery | None,
    sort: list[SortKey] | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Filter, sort and page documents.

    Returns:
        The requested page and the number of matching documents
    """
    matched = [doc for doc in documents if matches(doc, query)]
    if sort:
        matched = sort_documents(matched, sort)
    total = len(matched)
    end = None if limit is None else offset + limit
    return matched[offset:end], total
