"""
Tests for page selection and transactional re-indexing.

Covers:
- Staleness selection (new, edited, current, overwrite, since/limit/page_id)
- Chunk rows written per page (contiguous indices, embeddings, timestamps)
- Batched embedding calls
- Per-page rollback on embedding and storage failures
- Dry runs, concurrent batch embedding and progress notifications
"""

import json
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import BASE_TIME, FakeEmbedder, later
from kb_rag.config import IndexingConfig
from kb_rag.exceptions import EmbeddingError, IndexingError, StorageError
from kb_rag.indexing.indexer import KnowledgeBaseIndexer
from kb_rag.models import IndexStatus
from kb_rag.notifications import IndexingStage

MODEL = "test-embedding-model"


def words(n: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(n))


def make_indexer(executor, embed_fn, **config) -> KnowledgeBaseIndexer:
    settings = {"chunk_tokens": 5, "chunk_overlap": 0, "embed_batch_size": 50}
    settings.update(config)
    return KnowledgeBaseIndexer(
        executor=executor,
        embed_fn=embed_fn,
        embedding_model=MODEL,
        config=IndexingConfig(**settings),
    )


class TestSelectDocuments:
    """Tests for staleness-aware page selection"""

    def test_new_pages_are_selected_oldest_first(self, kb, executor, fake_embedder):
        kb.add_page(1, "one", updated_at=later(10))
        kb.add_page(2, "two", updated_at=later(5))
        kb.add_page(3, "three", updated_at=later(5))

        docs = make_indexer(executor, fake_embedder).select_documents()

        assert [d.id for d in docs] == [2, 3, 1]
        assert docs[0].text == "two"
        assert docs[0].title == "Page 2"
        assert docs[0].updated_at == later(5)

    def test_ineligible_pages_are_not_selected(self, kb, executor, fake_embedder):
        kb.add_page(1, "ok")
        kb.add_page(2, "draft", draft=True)
        kb.add_page(3, "template", template=True)
        kb.add_page(4, "deleted", deleted=True)
        kb.add_page(5, "chapter", entity_type="chapter")

        docs = make_indexer(executor, fake_embedder).select_documents()

        assert [d.id for d in docs] == [1]

    def test_indexed_pages_are_not_reselected(self, kb, executor, fake_embedder):
        kb.add_page(1, words(12))
        kb.add_page(2, words(3))
        indexer = make_indexer(executor, fake_embedder)

        indexer.run()

        assert indexer.select_documents() == []
        assert indexer.run().to_dict()["documents"] == 0

    def test_edited_page_is_reselected(self, kb, executor, fake_embedder):
        kb.add_page(1, "original text")
        kb.add_page(2, "untouched text")
        indexer = make_indexer(executor, fake_embedder)
        indexer.run()

        kb.edit_page(1, "edited text", later(30))

        assert [d.id for d in indexer.select_documents()] == [1]

    def test_overwrite_selects_current_pages(self, kb, executor, fake_embedder):
        kb.add_page(1, "text")
        indexer = make_indexer(executor, fake_embedder)
        indexer.run()

        assert [d.id for d in indexer.select_documents(overwrite=True)] == [1]

    def test_page_id_since_and_limit(self, kb, executor, fake_embedder):
        for page_id in range(1, 6):
            kb.add_page(page_id, f"text {page_id}", updated_at=later(page_id))
        indexer = make_indexer(executor, fake_embedder)

        assert [d.id for d in indexer.select_documents(page_id=4)] == [4]
        assert [d.id for d in indexer.select_documents(since=later(3))] == [3, 4, 5]
        assert [d.id for d in indexer.select_documents(limit=2)] == [1, 2]

    def test_null_text_is_empty(self, kb, executor, fake_embedder):
        kb.add_page(1, None)
        docs = make_indexer(executor, fake_embedder).select_documents()
        assert docs[0].text == ""


class TestIndexDocument:
    """Tests for the chunk rows written per page"""

    def test_writes_contiguous_chunks(self, kb, executor, fake_embedder):
        kb.add_page(1, words(12), updated_at=later(7))
        indexer = make_indexer(executor, fake_embedder)

        report = indexer.run()

        rows = kb.chunks(1)
        assert [r["chunk_index"] for r in rows] == [0, 1, 2]
        assert [r["content"] for r in rows] == ["w0 w1 w2 w3 w4", "w5 w6 w7 w8 w9", "w10 w11"]
        assert all(r["embedding_model"] == MODEL for r in rows)
        assert all(r["source_updated_at"] == later(7) for r in rows)
        assert json.loads(rows[2]["embedding"]) == FakeEmbedder.vector_for("w10 w11")
        assert report.to_dict() == {
            "documents": 1, "indexed": 1, "skipped_empty": 0, "failed": 0, "total_chunks": 3,
        }

    def test_empty_page_is_skipped(self, kb, executor, fake_embedder):
        kb.add_page(1, "   \n\t ")
        kb.add_page(2, None)
        indexer = make_indexer(executor, fake_embedder)

        report = indexer.run()

        assert report.skipped == 2
        assert report.total_chunks == 0
        assert fake_embedder.calls == []
        assert kb.chunks(1) == []

    def test_reindex_replaces_old_chunks(self, kb, executor, fake_embedder):
        kb.add_page(1, words(12))
        indexer = make_indexer(executor, fake_embedder)
        indexer.run()
        assert len(kb.chunks(1)) == 3

        kb.edit_page(1, "now much shorter", later(1))
        indexer.run()

        rows = kb.chunks(1)
        assert [r["content"] for r in rows] == ["now much shorter"]
        assert rows[0]["source_updated_at"] == later(1)

    def test_embeds_in_batches(self, kb, executor):
        embedder = FakeEmbedder()
        kb.add_page(1, words(25))
        indexer = make_indexer(executor, embedder, embed_batch_size=2)

        indexer.run()

        assert [len(texts) for _, texts in embedder.calls] == [2, 2, 1]
        assert all(model == MODEL for model, _ in embedder.calls)
        assert [r["chunk_index"] for r in kb.chunks(1)] == [0, 1, 2, 3, 4]

    def test_dry_run_writes_nothing(self, kb, executor, fake_embedder):
        kb.add_page(1, words(12))
        indexer = make_indexer(executor, fake_embedder)

        report = indexer.run(dry_run=True)

        assert report.outcomes[0].status is IndexStatus.DRY_RUN
        assert report.outcomes[0].chunk_count == 3
        assert fake_embedder.calls == []
        assert kb.chunks(1) == []
        assert [d.id for d in indexer.select_documents()] == [1]

    def test_concurrent_batches_match_sequential(self, kb, executor):
        kb.add_page(1, words(40))
        kb.add_page(2, words(40))

        make_indexer(executor, FakeEmbedder(), embed_batch_size=2).run(page_id=1)
        make_indexer(executor, FakeEmbedder(), embed_batch_size=2, max_concurrent_batches=3).run(page_id=2)

        def shape(rows):
            return [(r["chunk_index"], r["content"], r["embedding"]) for r in rows]

        assert shape(kb.chunks(1)) == shape(kb.chunks(2))
        assert len(kb.chunks(2)) == 8

    def test_get_stats(self, kb, executor, fake_embedder):
        kb.add_page(1, words(12))
        indexer = make_indexer(executor, fake_embedder)
        indexer.run()

        stats = indexer.get_stats()

        assert stats['pages_indexed_this_session'] == 1
        assert stats['total_chunks'] == 3
        assert stats['total_pages'] == 1
        assert stats['embedding_model'] == MODEL


class TestFailureRollback:
    """A failing page is rolled back; earlier pages stay committed"""

    @pytest.fixture
    def partially_indexed(self, kb, executor, fake_embedder):
        """Page 2 indexed with old text, then page 1 added and page 2 edited"""
        kb.add_page(2, "old vpn guide text")
        make_indexer(executor, fake_embedder, embed_batch_size=1).run(page_id=2)

        kb.add_page(1, "printer offline after update", updated_at=later(1))
        kb.edit_page(2, words(12, "new"), later(2))
        return kb

    def test_storage_failure_on_second_batch(self, partially_indexed, executor, monkeypatch):
        kb = partially_indexed
        before = kb.chunks(2)
        indexer = make_indexer(executor, FakeEmbedder(), embed_batch_size=1)

        original_insert = indexer.chunks.insert_chunks
        page_two_inserts = []

        def flaky_insert(conn, records):
            if records[0].page_id == 2:
                page_two_inserts.append(records)
                if len(page_two_inserts) == 2:
                    raise OperationalError("INSERT INTO kb_chunk", {}, Exception("disk I/O error"))
            return original_insert(conn, records)

        monkeypatch.setattr(indexer.chunks, "insert_chunks", flaky_insert)

        with pytest.raises(IndexingError) as exc_info:
            indexer.run()

        error = exc_info.value
        assert error.document_id == 2
        assert isinstance(error.__cause__, StorageError)
        assert [o.status for o in error.report.outcomes] == [IndexStatus.INDEXED, IndexStatus.FAILED]

        # Page 2 still has exactly its previous chunk set
        assert kb.chunks(2) == before
        assert [r["content"] for r in kb.chunks(2)] == ["old vpn guide text"]
        # Page 1 was committed before the failure
        assert [r["content"] for r in kb.chunks(1)] == ["printer offline after update"]
        # Page 2 is still stale and will be retried
        assert [d.id for d in indexer.select_documents()] == [2]

    def test_embedding_failure(self, partially_indexed, executor):
        kb = partially_indexed
        before = kb.chunks(2)
        # Call 1 embeds page 1, call 3 is page 2's second batch
        indexer = make_indexer(executor, FakeEmbedder(fail_on_call=3), embed_batch_size=1)

        with pytest.raises(IndexingError) as exc_info:
            indexer.run()

        assert exc_info.value.document_id == 2
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert kb.chunks(2) == before
        assert len(kb.chunks(1)) == 1

    def test_malformed_embedding_response(self, kb, executor):
        kb.add_page(1, words(12))
        indexer = make_indexer(executor, lambda model, texts: [[1.0]])

        with pytest.raises(IndexingError) as exc_info:
            indexer.run()

        assert isinstance(exc_info.value.__cause__, EmbeddingError)
        assert kb.chunks(1) == []

    def test_concurrent_embedding_failure(self, partially_indexed, executor):
        kb = partially_indexed
        before = kb.chunks(2)
        indexer = make_indexer(
            executor, FakeEmbedder(fail_on_call=3), embed_batch_size=1, max_concurrent_batches=3,
        )

        with pytest.raises(IndexingError):
            indexer.run()

        assert kb.chunks(2) == before

    def test_stops_at_first_failure(self, kb, executor):
        kb.add_page(1, "first page", updated_at=later(1))
        kb.add_page(2, "second page", updated_at=later(2))
        kb.add_page(3, "third page", updated_at=later(3))
        embedder = FakeEmbedder(fail_on_call=2)

        with pytest.raises(IndexingError) as exc_info:
            make_indexer(executor, embedder).run()

        assert exc_info.value.document_id == 2
        assert len(embedder.calls) == 2
        assert kb.chunks(3) == []


class TestRunNotifications:
    """Tests for progress reporting during run()"""

    def test_run_reports_progress(self, kb, executor, fake_embedder):
        kb.add_page(1, words(12))
        kb.add_page(2, "")
        notifier = Mock()
        indexer = KnowledgeBaseIndexer(
            executor, fake_embedder, MODEL,
            config=IndexingConfig(chunk_tokens=5, chunk_overlap=0, embed_batch_size=2),
            notifier=notifier,
        )

        indexer.run(run_label="Indexing Support KB")

        notifier.start.assert_called_once_with("Indexing Support KB", 2)
        assert notifier.finish.call_args.kwargs["success"] is True
        stages = [c.args[0].stage for c in notifier.notify.call_args_list]
        assert stages[0] is IndexingStage.SELECTING
        assert IndexingStage.CHUNKING in stages
        assert stages.count(IndexingStage.EMBEDDING) == 2
        assert IndexingStage.INDEXING in stages
        assert IndexingStage.SKIPPED in stages

    def test_run_reports_failure(self, kb, executor):
        kb.add_page(1, "text")
        notifier = Mock()
        indexer = KnowledgeBaseIndexer(
            executor, FakeEmbedder(fail_on_call=1), MODEL, notifier=notifier,
        )

        with pytest.raises(IndexingError):
            indexer.run()

        assert notifier.finish.call_args.kwargs["success"] is False
        error_events = [
            c.args[0] for c in notifier.notify.call_args_list
            if c.args[0].stage is IndexingStage.ERROR
        ]
        assert error_events[0].page_id == 1

    def test_notifier_errors_do_not_abort_indexing(self, kb, executor, fake_embedder):
        kb.add_page(1, "text")
        notifier = Mock()
        notifier.notify.side_effect = RuntimeError("webhook down")
        indexer = KnowledgeBaseIndexer(executor, fake_embedder, MODEL, notifier=notifier)

        report = indexer.run()

        assert report.indexed == 1
        assert kb.chunks(1)[0]["source_updated_at"] == BASE_TIME
