import re

from localized_document_storage.id_utils import document_id, row_id

HEX_ID = re.compile(r"^[0-9a-f]{24}$")


class TestDocumentId:
    def test_format(self):
        assert HEX_ID.match(document_id())

    def test_unique(self):
        assert len({document_id() for _ in range(100)}) == 100


class TestRowId:
    def test_format(self):
        assert HEX_ID.match(row_id())

    def test_unique(self):
        assert row_id() != row_id()
