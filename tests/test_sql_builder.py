"""
Tests for the SQLite query builder.

Generated statements are executed against a real in-memory SQLite database
and compared with the in-process matcher, so both evaluators agree.
"""

import json
import sqlite3

import pytest

from localized_document_storage.query import (
    EACH,
    And,
    Condition,
    ElemMatch,
    Key,
    Not,
    Operator,
    Or,
    SortKey,
    SQLiteQueryBuilder,
    StoragePath,
    apply_query,
)
from localized_document_storage.query.sql import LOWER_FUNCTION, json_path, unicode_lower


def path(*segments):
    return StoragePath(tuple(EACH if segment == "[]" else Key(segment) for segment in segments))


DOCUMENTS = [
    {
        "id": "a",
        "title": {"en": "Hello World", "es": "Hola Mundo"},
        "views": 5,
        "items": {"en": [{"id": "r1", "text": "one"}, {"id": "r2", "text": "two"}]},
        "refs": [{"relationTo": "posts", "value": "p1"}],
        "tags": ["x", "y"],
    },
    {
        "id": "b",
        "title": {"en": "Second", "es": None},
        "views": 12,
        "items": {"en": [], "es": [{"id": "r3", "text": "tres"}]},
        "refs": [{"relationTo": "pages", "value": "p1"}],
        "tags": [],
    },
    {
        "id": "c",
        "title": {"en": "50% off_sale"},
        "items": {"es": None},
        "rel": {"relationTo": "posts", "value": "p2"},
    },
]

QUERIES = [
    Condition(path("title", "en"), Operator.EQUALS, "Second"),
    Condition(path("title", "es"), Operator.EQUALS, None),
    Condition(path("views"), Operator.EQUALS, 5),
    Condition(path("views"), Operator.EQUALS, "5"),
    Condition(path("views"), Operator.IN, [12, 7]),
    Condition(path("views"), Operator.IN, []),
    Condition(path("title", "es"), Operator.IN, ["Hola Mundo", None]),
    Condition(path("title", "es"), Operator.EXISTS, True),
    Not(Condition(path("title", "es"), Operator.EXISTS, True)),
    Condition(path("title", "en"), Operator.CONTAINS, "WORLD"),
    Condition(path("title", "en"), Operator.CONTAINS, "50%"),
    Condition(path("title", "en"), Operator.CONTAINS, "f_s"),
    Condition(path("title", "en"), Operator.LIKE, "world hello"),
    Condition(path("views"), Operator.GREATER_THAN, 5),
    Condition(path("views"), Operator.LESS_THAN_EQUAL, 5),
    Condition(path("items", "en", "[]", "text"), Operator.EQUALS, "two"),
    Condition(path("items", "es", "[]", "text"), Operator.EQUALS, None),
    Not(Condition(path("items", "en", "[]", "text"), Operator.EQUALS, "two")),
    Condition(path("tags", "[]"), Operator.IN, ["y"]),
    Not(Condition(path("title", "en"), Operator.EQUALS, "Second")),
    And(
        [
            Condition(path("views"), Operator.GREATER_THAN, 1),
            Condition(path("title", "en"), Operator.CONTAINS, "o"),
        ]
    ),
    Or(
        [
            Condition(path("views"), Operator.EQUALS, 12),
            Condition(path("id"), Operator.EQUALS, "c"),
        ]
    ),
    Or([]),
    ElemMatch(
        path("refs", "[]"),
        And(
            [
                Condition(path("relationTo"), Operator.EQUALS, "posts"),
                Condition(path("value"), Operator.IN, ["p1"]),
            ]
        ),
    ),
    ElemMatch(
        path("rel"),
        Or(
            [
                And(
                    [
                        Condition(path("relationTo"), Operator.EQUALS, "posts"),
                        Condition(path("value"), Operator.IN, ["p2"]),
                    ]
                )
            ]
        ),
    ),
]


@pytest.fixture
def connection():
    conn = sqlite3.connect(":memory:")
    conn.create_function(LOWER_FUNCTION, 1, unicode_lower, deterministic=True)
    conn.execute(
        "CREATE TABLE documents (collection TEXT, id TEXT, data TEXT, "
        "created_at TEXT, updated_at TEXT, PRIMARY KEY (collection, id))"
    )
    for doc in DOCUMENTS:
        conn.execute(
            "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
            ("posts", doc["id"], json.dumps(doc)),
        )
    conn.execute(
        "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
        ("other", "z", json.dumps({"id": "z", "views": 5})),
    )
    yield conn
    conn.close()


def load(conn, collection, documents):
    for doc in documents:
        conn.execute(
            "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
            (collection, doc["id"], json.dumps(doc)),
        )


def run(conn, query):
    return conn.execute(query.sql, query.parameters).fetchall()


class TestJsonPath:
    def test_quoted_keys(self):
        assert json_path(["items", "en"]) == '$."items"."en"'

    def test_root(self):
        assert json_path([]) == "$"


class TestAgreementWithMatcher:
    @pytest.mark.parametrize("query", QUERIES, ids=[str(i) for i in range(len(QUERIES))])
    def test_same_documents_match(self, connection, query):
        """SQL and in-process evaluation select the same documents."""
        builder = SQLiteQueryBuilder()
        rows = run(connection, builder.build_ids("posts", query))
        expected, _ = apply_query(DOCUMENTS, query)

        assert sorted(row[0] for row in rows) == sorted(doc["id"] for doc in expected)


class TestBuild:
    def test_parameters_match_placeholders(self):
        builder = SQLiteQueryBuilder()
        for query in QUERIES:
            built = builder.build("posts", query, [SortKey(path("views"))], 10, 5)
            assert built.sql.count("?") == len(built.parameters)

    def test_collection_scoping(self, connection):
        builder = SQLiteQueryBuilder()
        rows = run(connection, builder.build("posts", None))
        assert len(rows) == 3

    def test_sort_and_paginate(self, connection):
        builder = SQLiteQueryBuilder()
        built = builder.build("posts", None, [SortKey(path("views"), descending=True)], 2, 0)
        rows = run(connection, built)
        assert [json.loads(row[0])["id"] for row in rows] == ["b", "a"]

        built = builder.build("posts", None, [SortKey(path("views"), descending=True)], 2, 2)
        rows = run(connection, built)
        assert [json.loads(row[0])["id"] for row in rows] == ["c"]

    def test_sort_nulls_first_ascending(self, connection):
        builder = SQLiteQueryBuilder()
        rows = run(connection, builder.build("posts", None, [SortKey(path("views"))]))
        assert [json.loads(row[0])["id"] for row in rows] == ["c", "a", "b"]

    def test_offset_without_limit(self, connection):
        builder = SQLiteQueryBuilder()
        built = builder.build("posts", None, [SortKey(path("views"))], None, 1)
        assert "LIMIT -1 OFFSET ?" in built.sql
        assert len(run(connection, built)) == 2

    def test_count(self, connection):
        builder = SQLiteQueryBuilder()
        query = Condition(path("views"), Operator.GREATER_THAN, 1)
        rows = run(connection, builder.build_count("posts", query))
        assert rows == [(2,)]

    def test_join_must_be_bound(self):
        from localized_document_storage.query import Join

        builder = SQLiteQueryBuilder()
        with pytest.raises(ValueError):
            builder.build("posts", Join(path=path("rel"), targets=[]))


MIXED_DOCUMENTS = [
    {"id": "m1", "items": [{"text": "first row"}], "meta": {"note": "first"}, "rank": "10"},
    {"id": "m2", "items": "first", "meta": "first", "rank": 10},
    {"id": "m3", "title": {"es": "ÑANDÚ veloz"}, "flags": [True, "yes", 3]},
]

MIXED_QUERIES = [
    Condition(path("items"), Operator.CONTAINS, "first"),
    Condition(path("items"), Operator.LIKE, "first row"),
    Condition(path("meta"), Operator.EQUALS, "first"),
    Condition(path("meta"), Operator.IN, ["first", '{"note":"first"}']),
    Condition(path("rank"), Operator.GREATER_THAN, 5),
    Condition(path("rank"), Operator.GREATER_THAN, "1"),
    Condition(path("items"), Operator.GREATER_THAN, "a"),
    Condition(path("title", "es"), Operator.CONTAINS, "ñandú"),
    Condition(path("title", "es"), Operator.LIKE, "Veloz ñAnDú"),
    Condition(path("flags", "[]"), Operator.CONTAINS, "ye"),
    Condition(path("flags", "[]"), Operator.EQUALS, "yes"),
    Condition(path("flags", "[]"), Operator.GREATER_THAN, 2),
]


class TestValueTypes:
    """Arrays, objects and mixed-type values select the same documents in SQL and in process."""

    @pytest.mark.parametrize(
        "query", MIXED_QUERIES, ids=[str(i) for i in range(len(MIXED_QUERIES))]
    )
    def test_same_documents_match(self, connection, query):
        load(connection, "mixed", MIXED_DOCUMENTS)
        builder = SQLiteQueryBuilder()
        rows = run(connection, builder.build_ids("mixed", query))
        expected, _ = apply_query(MIXED_DOCUMENTS, query)

        assert sorted(row[0] for row in rows) == sorted(doc["id"] for doc in expected)

    def test_text_operators_skip_containers(self, connection):
        load(connection, "mixed", MIXED_DOCUMENTS)
        builder = SQLiteQueryBuilder()
        query = Condition(path("items"), Operator.CONTAINS, "first")

        assert run(connection, builder.build_ids("mixed", query)) == [("m2",)]

    def test_case_insensitive_beyond_ascii(self, connection):
        load(connection, "mixed", MIXED_DOCUMENTS)
        builder = SQLiteQueryBuilder()
        query = Condition(path("title", "es"), Operator.CONTAINS, "ñandú")

        assert run(connection, builder.build_ids("mixed", query)) == [("m3",)]
