"""
Storage query types.

A ``StorageQuery`` is a tree of conditions over storage paths, i.e. paths
into the persisted document shape where a localized field's locale is an
explicit key and every array step is explicit. Backends evaluate these
trees; they never see field paths or locales.

Node types:
- Condition: operator applied to the values found at a path
- And / Or / Not: logical composition
- ElemMatch: a condition that must hold within one element of a list
- Join: a condition on related documents; the service binds it to an id
  list before the query reaches a backend
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Operator(Enum):
    """Where clause operators."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"
    CONTAINS = "contains"
    LIKE = "like"
    GREATER_THAN = "greater_than"
    GREATER_THAN_EQUAL = "greater_than_equal"
    LESS_THAN = "less_than"
    LESS_THAN_EQUAL = "less_than_equal"

    @property
    def positive(self) -> Operator:
        """Operator whose negation this one is; itself for positive operators."""
        return _NEGATIONS.get(self, self)

    @property
    def is_negated(self) -> bool:
        return self in _NEGATIONS


_NEGATIONS = {
    Operator.NOT_EQUALS: Operator.EQUALS,
    Operator.NOT_IN: Operator.IN,
}


@dataclass(frozen=True)
class Key:
    """Step into an object member."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Each:
    """Step into every element of a list (existential)."""

    def __str__(self) -> str:
        return "[]"


EACH = Each()

PathSegment = Key | Each


@dataclass(frozen=True)
class StoragePath:
    """Path into a stored document."""

    segments: tuple[PathSegment, ...] = ()

    @classmethod
    def of(cls, *names: str) -> StoragePath:
        return cls(tuple(Key(name) for name in names))

    def key(self, name: str) -> StoragePath:
        return StoragePath((*self.segments, Key(name)))

    def each(self) -> StoragePath:
        return StoragePath((*self.segments, EACH))

    @property
    def has_each(self) -> bool:
        return any(isinstance(segment, Each) for segment in self.segments)

    def split_each(self) -> list[list[str]]:
        """Key names grouped between list steps.

        ``a.b[].c[].d`` becomes ``[["a", "b"], ["c"], ["d"]]``; a path
        ending in a list step ends with an empty group.
        """
        groups: list[list[str]] = [[]]
        for segment in self.segments:
            if isinstance(segment, Each):
                groups.append([])
            else:
                groups[-1].append(segment.name)
        return groups

    def __str__(self) -> str:
        text = ""
        for segment in self.segments:
            if isinstance(segment, Each):
                text += "[]"
            else:
                text += f".{segment.name}" if text else segment.name
        return text


@dataclass
class Condition:
    """Positive operator applied to the values at a path."""

    path: StoragePath
    operator: Operator
    value: Any = None


@dataclass
class And:
    children: list[StorageQuery] = field(default_factory=list)


@dataclass
class Or:
    children: list[StorageQuery] = field(default_factory=list)


@dataclass
class Not:
    child: StorageQuery


@dataclass
class ElemMatch:
    """Condition evaluated against each element found at ``path``.

    Paths inside ``condition`` are relative to the element.
    """

    path: StoragePath
    condition: StorageQuery


@dataclass
class JoinTarget:
    """Sub-query over one related collection."""

    collection: str
    query: StorageQuery


@dataclass
class Join:
    """Condition on documents referenced from ``path``.

    Attributes:
        path: Storage path of the relationship value
        targets: One sub-query per collection the relationship may point at
        has_many: The value is a list of references
        polymorphic: References are ``{"relationTo", "value"}`` pairs
    """

    path: StoragePath
    targets: list[JoinTarget]
    has_many: bool = False
    polymorphic: bool = False


StorageQuery = Condition | And | Or | Not | ElemMatch | Join


@dataclass(frozen=True)
class SortKey:
    """Sort order on a storage path that does not cross lists."""

    path: StoragePath
    descending: bool = False
