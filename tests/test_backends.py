"""
Tests for storage backends.

Every test here runs against the memory, SQLite and local file backends
through the parametrized ``backend`` fixture.
"""

import asyncio
from pathlib import Path

import pytest

from localized_document_storage.backends import (
    LocalFileBackend,
    LocalFileConfig,
    SQLiteBackend,
    SQLiteConfig,
)
from localized_document_storage.exceptions import (
    DocumentExistsError,
    DocumentNotFoundError,
    StorageIOError,
)
from localized_document_storage.local import (
    list_json_files,
    read_json,
    remove_file,
    write_json_atomic,
)
from localized_document_storage.query import (
    Condition,
    Operator,
    SortKey,
    StoragePath,
)

COLLECTION = "posts"


def post(document_id: str, views: int, title_en: str, **extra) -> dict:
    return {"id": document_id, "title": {"en": title_en}, "views": views, **extra}


@pytest.fixture
async def populated(backend):
    for doc in [
        post("a", 3, "Alpha"),
        post("b", 1, "Beta"),
        post("c", 2, "Gamma"),
        post("d", 5, "Delta"),
    ]:
        await backend.insert(COLLECTION, doc)
    await backend.insert("pages", post("a", 100, "Other collection"))
    return backend


class TestDocumentOperations:
    async def test_insert_and_get(self, backend):
        doc = post("a", 1, "Hello", title_es=None)
        await backend.insert(COLLECTION, doc)

        stored = await backend.get(COLLECTION, "a")
        assert stored == doc

    async def test_get_missing(self, backend):
        assert await backend.get(COLLECTION, "missing") is None

    async def test_get_returns_copy(self, backend):
        await backend.insert(COLLECTION, post("a", 1, "Hello"))
        stored = await backend.get(COLLECTION, "a")
        stored["title"]["en"] = "Changed"

        assert (await backend.get(COLLECTION, "a"))["title"]["en"] == "Hello"

    async def test_insert_duplicate(self, backend):
        await backend.insert(COLLECTION, post("a", 1, "Hello"))
        with pytest.raises(DocumentExistsError) as exc_info:
            await backend.insert(COLLECTION, post("a", 2, "Again"))
        assert exc_info.value.document_id == "a"

    async def test_concurrent_inserts_same_id(self, backend):
        """Only one of two racing inserts of the same id is stored."""
        results = await asyncio.gather(
            backend.insert(COLLECTION, post("a", 1, "First")),
            backend.insert(COLLECTION, post("a", 2, "Second")),
            return_exceptions=True,
        )

        errors = [result for result in results if isinstance(result, DocumentExistsError)]
        assert len(errors) == 1
        stored = await backend.get(COLLECTION, "a")
        winner = 1 if results[0] is None else 2
        assert stored["views"] == winner

    async def test_same_id_in_other_collection(self, backend):
        await backend.insert(COLLECTION, post("a", 1, "Hello"))
        await backend.insert("pages", post("a", 2, "Page"))

        assert (await backend.get("pages", "a"))["views"] == 2

    async def test_replace(self, backend):
        await backend.insert(COLLECTION, post("a", 1, "Hello"))
        await backend.replace(COLLECTION, "a", post("a", 9, "Hola"))

        assert (await backend.get(COLLECTION, "a"))["views"] == 9

    async def test_replace_missing(self, backend):
        with pytest.raises(DocumentNotFoundError):
            await backend.replace(COLLECTION, "missing", post("missing", 1, "x"))

    async def test_delete(self, backend):
        await backend.insert(COLLECTION, post("a", 1, "Hello"))

        assert await backend.delete(COLLECTION, "a") is True
        assert await backend.get(COLLECTION, "a") is None
        assert await backend.delete(COLLECTION, "a") is False

    async def test_unicode_round_trip(self, backend):
        doc = {"id": "u", "title": {"es": "Año ñandú"}}
        await backend.insert(COLLECTION, doc)
        assert await backend.get(COLLECTION, "u") == doc


class TestFind:
    async def test_find_all_scoped_to_collection(self, populated):
        page = await populated.find(COLLECTION)
        assert page.total == 4
        assert len(page.docs) == 4

    async def test_find_empty_collection(self, backend):
        page = await backend.find("nothing")
        assert page.docs == []
        assert page.total == 0

    async def test_filter(self, populated):
        query = Condition(StoragePath.of("views"), Operator.GREATER_THAN, 2)
        page = await populated.find(COLLECTION, query, [SortKey(StoragePath.of("views"))])
        assert [doc["id"] for doc in page.docs] == ["a", "d"]

    async def test_localized_filter(self, populated):
        query = Condition(StoragePath.of("title", "en"), Operator.CONTAINS, "ta")
        page = await populated.find(COLLECTION, query, [SortKey(StoragePath.of("id"))])
        assert [doc["id"] for doc in page.docs] == ["b", "d"]

    async def test_sort_descending(self, populated):
        page = await populated.find(COLLECTION, sort=[SortKey(StoragePath.of("views"), True)])
        assert [doc["id"] for doc in page.docs] == ["d", "a", "c", "b"]

    async def test_limit_and_offset(self, populated):
        sort = [SortKey(StoragePath.of("views"))]
        page = await populated.find(COLLECTION, sort=sort, limit=2, offset=1)

        assert [doc["id"] for doc in page.docs] == ["c", "a"]
        assert page.total == 4

    async def test_offset_past_end(self, populated):
        page = await populated.find(COLLECTION, limit=2, offset=10)
        assert page.docs == []
        assert page.total == 4

    async def test_find_ids(self, populated):
        query = Condition(StoragePath.of("views"), Operator.IN, [1, 5])
        ids = await populated.find_ids(COLLECTION, query)
        assert sorted(ids) == ["b", "d"]

    async def test_find_ids_without_query(self, populated):
        assert sorted(await populated.find_ids(COLLECTION)) == ["a", "b", "c", "d"]


class TestLocking:
    async def test_lock_serializes_updates(self, backend):
        await backend.insert(COLLECTION, {"id": "a", "views": 0})

        async def increment():
            async with backend.lock(COLLECTION, "a"):
                doc = await backend.get(COLLECTION, "a")
                await asyncio.sleep(0)
                doc["views"] += 1
                await backend.replace(COLLECTION, "a", doc)

        await asyncio.gather(*(increment() for _ in range(5)))
        assert (await backend.get(COLLECTION, "a"))["views"] == 5

    async def test_locks_released_after_use(self, backend):
        for index in range(20):
            document_id = f"doc{index}"
            await backend.insert(COLLECTION, {"id": document_id, "views": 0})
            async with backend.lock(COLLECTION, document_id):
                await backend.replace(COLLECTION, document_id, {"id": document_id, "views": 1})
            async with backend.lock(COLLECTION, document_id):
                await backend.delete(COLLECTION, document_id)

        assert backend.active_locks == 0

    async def test_lock_kept_while_awaited(self, backend):
        entered = asyncio.Event()
        release = asyncio.Event()

        async def holder():
            async with backend.lock(COLLECTION, "a"):
                entered.set()
                await release.wait()

        async def waiter():
            async with backend.lock(COLLECTION, "a"):
                pass

        tasks = [asyncio.create_task(holder())]
        await entered.wait()
        tasks.append(asyncio.create_task(waiter()))
        await asyncio.sleep(0)
        assert backend.active_locks == 1

        release.set()
        await asyncio.gather(*tasks)
        assert backend.active_locks == 0


class TestSQLiteBackend:
    async def test_context_manager(self):
        async with SQLiteBackend(SQLiteConfig()) as storage:
            await storage.insert(COLLECTION, {"id": "a"})
            assert await storage.get(COLLECTION, "a") == {"id": "a"}
        assert storage.conn is None

    async def test_file_database_persists(self, tmp_path):
        config = SQLiteConfig(db_path=tmp_path / "documents.db")
        storage = await SQLiteBackend.create(config)
        await storage.insert(COLLECTION, {"id": "a", "views": 1})
        await storage.close()

        storage = await SQLiteBackend.create(config)
        try:
            assert await storage.get(COLLECTION, "a") == {"id": "a", "views": 1}
        finally:
            await storage.close()

    async def test_uninitialized(self):
        storage = SQLiteBackend(SQLiteConfig())
        with pytest.raises(StorageIOError):
            await storage.get(COLLECTION, "a")

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("LOCALIZED_STORAGE_SQLITE_PATH", "/tmp/cms.db")
        assert SQLiteConfig.from_env().db_path == "/tmp/cms.db"

    def test_config_default(self, monkeypatch):
        monkeypatch.delenv("LOCALIZED_STORAGE_SQLITE_PATH", raising=False)
        assert SQLiteConfig.from_env().db_path == ":memory:"


class TestLocalFileBackend:
    async def test_layout(self, tmp_path):
        storage = await LocalFileBackend.create(LocalFileConfig(base_path=tmp_path))
        await storage.insert(COLLECTION, {"id": "a"})

        assert (tmp_path / COLLECTION / "a.json").exists()

    async def test_unsafe_names_rejected(self, tmp_path):
        storage = await LocalFileBackend.create(LocalFileConfig(base_path=tmp_path))
        with pytest.raises(StorageIOError):
            await storage.insert(COLLECTION, {"id": "../escape"})
        with pytest.raises(StorageIOError):
            await storage.get("../other", "a")

    def test_config_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LOCALIZED_STORAGE_LOCAL_PATH", str(tmp_path))
        assert LocalFileConfig.from_env().base_path == tmp_path

    def test_config_default(self, monkeypatch):
        monkeypatch.delenv("LOCALIZED_STORAGE_LOCAL_PATH", raising=False)
        assert LocalFileConfig.from_env().base_path == Path.home() / ".localized-storage"


class TestFileOps:
    async def test_write_and_read(self, tmp_path):
        path = tmp_path / "nested" / "doc.json"
        await write_json_atomic(path, {"title": "Año"})

        assert await read_json(path) == {"title": "Año"}

    async def test_read_missing(self, tmp_path):
        assert await read_json(tmp_path / "missing.json") is None

    async def test_read_corrupt(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageIOError) as exc_info:
            await read_json(path)
        assert exc_info.value.operation == "parse_json"

    async def test_list_skips_temp_files(self, tmp_path):
        (tmp_path / "b.json").write_text("{}", encoding="utf-8")
        (tmp_path / "a.json").write_text("{}", encoding="utf-8")
        (tmp_path / ".tmp_x.json").write_text("{}", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("", encoding="utf-8")

        files = await list_json_files(tmp_path)
        assert [path.name for path in files] == ["a.json", "b.json"]

    async def test_list_missing_directory(self, tmp_path):
        assert await list_json_files(tmp_path / "missing") == []

    async def test_remove(self, tmp_path):
        path = tmp_path / "doc.json"
        await write_json_atomic(path, {})

        assert await remove_file(path) is True
        assert await remove_file(path) is False
