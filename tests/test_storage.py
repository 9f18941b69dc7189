"""
Tests for the engine factory, query executor and chunk store.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine, inspect, text

from conftest import BASE_TIME
from kb_rag.config import DatabaseConfig
from kb_rag.exceptions import MalformedRowError, StorageError
from kb_rag.models import ChunkRecord, Document
from kb_rag.storage import ChunkStore, create_chunk_table, create_db_engine, serialize_embedding


def record(page_id: int, index: int, content: str = "chunk") -> ChunkRecord:
    return ChunkRecord(
        page_id=page_id,
        chunk_index=index,
        content=content,
        embedding=[0.25, 1, -3],
        embedding_model="test-model",
        source_updated_at=BASE_TIME,
    )


class TestQueryExecutor:
    """Tests for QueryExecutor"""

    def test_fetch_all_returns_mappings(self, executor):
        rows = executor.fetch_all(text("SELECT 1 AS one, 'x' AS two"))
        assert [dict(r) for r in rows] == [{"one": 1, "two": "x"}]

    def test_query_errors_become_storage_errors(self, executor):
        with pytest.raises(StorageError):
            executor.fetch_all(text("SELECT * FROM missing_table"))

    def test_transaction_commits(self, executor):
        store = ChunkStore(executor)
        with executor.transaction() as conn:
            store.insert_chunks(conn, [record(1, 0), record(1, 1)])

        assert [r["chunk_index"] for r in store.chunks_for_page(1)] == [0, 1]

    def test_transaction_rolls_back_on_error(self, executor):
        store = ChunkStore(executor)
        with pytest.raises(RuntimeError):
            with executor.transaction() as conn:
                store.insert_chunks(conn, [record(1, 0)])
                raise RuntimeError("embedding failed")

        assert store.chunks_for_page(1) == []

    def test_duplicate_chunk_index_rolls_back(self, executor):
        store = ChunkStore(executor)
        with pytest.raises(StorageError):
            with executor.transaction() as conn:
                store.insert_chunks(conn, [record(1, 0)])
                store.insert_chunks(conn, [record(1, 0)])

        assert store.chunks_for_page(1) == []

    def test_invalid_url(self):
        with pytest.raises(StorageError):
            create_db_engine(DatabaseConfig(url="nosuchdialect://host/db"))


class TestChunkStore:
    """Tests for ChunkStore"""

    def test_serialize_embedding(self):
        assert serialize_embedding([1, 0.5, -2]) == "[1.0, 0.5, -2.0]"

    def test_delete_for_page_only_touches_that_page(self, executor):
        store = ChunkStore(executor)
        with executor.transaction() as conn:
            store.insert_chunks(conn, [record(1, 0), record(1, 1), record(2, 0)])

        with executor.transaction() as conn:
            assert store.delete_for_page(conn, 1) == 2

        assert store.chunks_for_page(1) == []
        assert len(store.chunks_for_page(2)) == 1

    def test_insert_empty_is_noop(self, executor):
        with executor.transaction() as conn:
            assert ChunkStore(executor).insert_chunks(conn, []) == 0

    def test_latest_source_update(self, executor):
        store = ChunkStore(executor)
        assert store.latest_source_update(1) is None

        with executor.transaction() as conn:
            store.insert_chunks(conn, [record(1, 0)])

        assert store.latest_source_update(1) == BASE_TIME

    def test_stored_row(self, executor):
        store = ChunkStore(executor)
        with executor.transaction() as conn:
            store.insert_chunks(conn, [record(3, 0, "Reset the router")])

        row = store.chunks_for_page(3)[0]
        assert row["content"] == "Reset the router"
        assert row["embedding"] == "[0.25, 1.0, -3.0]"
        assert row["embedding_model"] == "test-model"
        assert row["chunk_type"] is None
        assert store.get_stats() == {"total_chunks": 1, "total_pages": 1}

    def test_create_chunk_table_only_creates_kb_chunk(self):
        engine = create_engine("sqlite://")
        create_chunk_table(engine)
        create_chunk_table(engine)

        assert inspect(engine).get_table_names() == ["kb_chunk"]


class TestDocumentRows:
    """Tests for Document.from_row"""

    def test_from_row(self):
        doc = Document.from_row({"id": 4, "name": "VPN", "updated_at": datetime(2024, 5, 1), "text": None})
        assert doc == Document(id=4, updated_at=datetime(2024, 5, 1), text="", title="VPN")

    def test_malformed_rows(self):
        with pytest.raises(MalformedRowError):
            Document.from_row({"id": 4, "name": "VPN", "text": "x"})
        with pytest.raises(MalformedRowError):
            Document.from_row({"id": "4", "name": "VPN", "updated_at": datetime(2024, 5, 1), "text": "x"})
        with pytest.raises(MalformedRowError):
            Document.from_row({"id": 4, "name": "VPN", "updated_at": "yesterday", "text": "x"})
