"""
Locale-aware queries.

Filters and sort orders are written against field paths and translated
into storage queries that backends evaluate, either in process
(``matcher``) or as SQLite statements (``sql``).
"""

from .matcher import apply_query, matches, sort_documents, walk
from .paths import FieldPath, FieldPathParser, PathStep
from .sql import SQLiteQueryBuilder, SQLQuery
from .translator import QueryTranslator
from .types import (
    EACH,
    And,
    Condition,
    Each,
    ElemMatch,
    Join,
    JoinTarget,
    Key,
    Not,
    Operator,
    Or,
    SortKey,
    StoragePath,
    StorageQuery,
)

__all__ = [
    "EACH",
    "And",
    "Condition",
    "Each",
    "ElemMatch",
    "FieldPath",
    "FieldPathParser",
    "Join",
    "JoinTarget",
    "Key",
    "Not",
    "Operator",
    "Or",
    "PathStep",
    "QueryTranslator",
    "SQLQuery",
    "SQLiteQueryBuilder",
    "SortKey",
    "StoragePath",
    "StorageQuery",
    "apply_query",
    "matches",
    "sort_documents",
    "walk",
]
