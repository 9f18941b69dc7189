"""
Knowledge Base Indexer - Incremental, per-page atomic chunk indexing

For each page selected for (re)indexing:
1. Chunk the page text into overlapping token windows
2. Open a transaction and delete the page's existing chunks
3. Embed chunk texts batch by batch and insert one row per chunk
4. Commit; on any failure roll back this page only and abort the run

A page's stored chunk set is therefore always either the previous complete
set or the new complete set. Pages committed earlier in the run stay indexed.

Runs are not locked against each other: callers must not index the same page
from two processes at once.
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from kb_rag.config import IndexingConfig
from kb_rag.exceptions import IndexingError
from kb_rag.indexing.chunker import TokenWindowChunker
from kb_rag.indexing.embedder import EmbeddingFunction, validate_embeddings
from kb_rag.models import ChunkRecord, Document, IndexOutcome, IndexReport, IndexStatus
from kb_rag.notifications import IndexingStage, NotifierInterface, NullNotifier, ProgressEvent
from kb_rag.storage.chunks import ChunkStore
from kb_rag.storage.documents import DocumentStore
from kb_rag.storage.executor import QueryExecutor

logger = logging.getLogger(__name__)


def _batches(texts: Sequence[str], batch_size: int) -> List[tuple]:
    """(offset, batch) pairs covering texts in order"""
    return [(offset, list(texts[offset:offset + batch_size])) for offset in range(0, len(texts), batch_size)]


class KnowledgeBaseIndexer:
    """Chunk, embed and store BookStack pages"""

    def __init__(
        self,
        executor: QueryExecutor,
        embed_fn: EmbeddingFunction,
        embedding_model: str,
        config: Optional[IndexingConfig] = None,
        notifier: Optional[NotifierInterface] = None,
    ):
        """
        Initialize indexer

        Args:
            executor: Query executor for the BookStack database
            embed_fn: Callable ``(model, texts) -> vectors``
            embedding_model: Model name passed to embed_fn and stored per chunk
            config: Chunking and batching settings
            notifier: Progress notifier (default: no-op)
        """
        self.executor = executor
        self.embed_fn = embed_fn
        self.embedding_model = embedding_model
        self.config = config or IndexingConfig()
        self.notifier = notifier or NullNotifier()

        self.documents = DocumentStore(executor)
        self.chunks = ChunkStore(executor)
        self.chunker = TokenWindowChunker(
            max_tokens=self.config.chunk_tokens,
            overlap_tokens=self.config.chunk_overlap,
        )
        self.indexed_count = 0

    def select_documents(
        self,
        page_id: Optional[int] = None,
        since: Optional[datetime] = None,
        overwrite: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Pages needing (re)indexing; see DocumentStore.select_for_indexing"""
        documents = self.documents.select_for_indexing(
            page_id=page_id, since=since, overwrite=overwrite, limit=limit,
        )
        logger.info(f"Selected {len(documents)} pages for indexing (overwrite={overwrite})")
        return documents

    def _embed(self, batch: List[str]) -> List[List[float]]:
        return validate_embeddings(batch, self.embed_fn(self.embedding_model, batch))

    def _records(self, document: Document, offset: int, batch: List[str], vectors) -> List[ChunkRecord]:
        return [
            ChunkRecord(
                page_id=document.id,
                chunk_index=offset + i,
                content=text,
                embedding=vector,
                embedding_model=self.embedding_model,
                source_updated_at=document.updated_at,
            )
            for i, (text, vector) in enumerate(zip(batch, vectors))
        ]

    def _tell(self, method: str, *args, **kwargs) -> None:
        try:
            getattr(self.notifier, method)(*args, **kwargs)
        except Exception as e:
            logger.debug(f"Notifier {method} failed: {e}")

    def _notify(self, event: ProgressEvent) -> None:
        self._tell("notify", event)

    def _replace_sequential(self, document: Document, texts: List[str]) -> None:
        batches = _batches(texts, self.config.embed_batch_size)
        with self.executor.transaction() as conn:
            deleted = self.chunks.delete_for_page(conn, document.id)
            logger.debug(f"Page {document.id}: deleted {deleted} existing chunks")

            for number, (offset, batch) in enumerate(batches, start=1):
                vectors = self._embed(batch)
                self.chunks.insert_chunks(conn, self._records(document, offset, batch, vectors))
                self._notify(ProgressEvent(
                    stage=IndexingStage.EMBEDDING,
                    message=f"Page {document.id}: embedded batch {number}/{len(batches)}",
                    current=number,
                    total=len(batches),
                    page_id=document.id,
                ))

    def _replace_concurrent(self, document: Document, texts: List[str]) -> None:
        # Embed every batch first; the transaction only opens once all succeed
        batches = _batches(texts, self.config.embed_batch_size)
        workers = min(self.config.max_concurrent_batches, len(batches))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            all_vectors = list(pool.map(self._embed, [batch for _, batch in batches]))

        with self.executor.transaction() as conn:
            self.chunks.delete_for_page(conn, document.id)
            for (offset, batch), vectors in zip(batches, all_vectors):
                self.chunks.insert_chunks(conn, self._records(document, offset, batch, vectors))

    def index_document(self, document: Document, dry_run: bool = False) -> IndexOutcome:
        """
        Re-index one page atomically

        Args:
            document: Page to index
            dry_run: Chunk only, write nothing

        Returns:
            IndexOutcome (INDEXED, SKIPPED_EMPTY or DRY_RUN)

        Raises:
            Exception: Whatever the embedding function or storage raised,
                after this page's transaction was rolled back
        """
        texts = [c.text for c in self.chunker.chunk_document(document.text)]

        if not texts:
            logger.info(f"Skipping page {document.id}: no content.")
            self._notify(ProgressEvent(
                stage=IndexingStage.SKIPPED,
                message=f"Page {document.id}: no content",
                page_id=document.id,
            ))
            return IndexOutcome(document.id, IndexStatus.SKIPPED_EMPTY)

        logger.info(f"Indexing page {document.id} with {len(texts)} chunks...")
        self._notify(ProgressEvent(
            stage=IndexingStage.CHUNKING,
            message=f"Page {document.id}: {len(texts)} chunks",
            page_id=document.id,
        ))

        if dry_run:
            return IndexOutcome(document.id, IndexStatus.DRY_RUN, chunk_count=len(texts))

        start_time = time.time()
        if self.config.max_concurrent_batches > 1:
            self._replace_concurrent(document, texts)
        else:
            self._replace_sequential(document, texts)

        latency_ms = int((time.time() - start_time) * 1000)
        self.indexed_count += 1
        logger.info(f"Committed {len(texts)} chunks for page {document.id} ({latency_ms} ms)")
        self._notify(ProgressEvent(
            stage=IndexingStage.INDEXING,
            message=f"Page {document.id}: stored {len(texts)} chunks",
            page_id=document.id,
        ))
        return IndexOutcome(document.id, IndexStatus.INDEXED, chunk_count=len(texts))

    def reindex(self, documents: Iterable[Document], dry_run: bool = False) -> IndexReport:
        """
        Index pages in order, stopping at the first failure

        Args:
            documents: Pages selected for (re)indexing
            dry_run: Chunk only, write nothing

        Returns:
            IndexReport with one outcome per processed page

        Raises:
            IndexingError: A page failed; its transaction was rolled back,
                earlier pages stay committed. ``error.report`` holds the
                outcomes so far, ending with the FAILED one.
        """
        documents = list(documents)
        report = IndexReport()
        trace_id = str(uuid.uuid4())
        logger.debug(f"Indexing run {trace_id}: {len(documents)} pages")

        for position, document in enumerate(documents, start=1):
            try:
                outcome = self.index_document(document, dry_run=dry_run)
            except Exception as e:
                report.add(IndexOutcome(document.id, IndexStatus.FAILED, error=str(e)))
                logger.error(f"Indexing page {document.id} failed, rolled back: {e}")
                self._notify(ProgressEvent(
                    stage=IndexingStage.ERROR,
                    message=f"Page {document.id} failed",
                    current=position,
                    total=len(documents),
                    page_id=document.id,
                    error=str(e),
                ))
                raise IndexingError(
                    f"Indexing aborted at page {document.id}: {e}",
                    document_id=document.id,
                    report=report,
                ) from e
            report.add(outcome)

        logger.info(
            f"Indexing complete: {report.indexed} indexed, {report.skipped} skipped, "
            f"{report.total_chunks} chunks"
        )
        return report

    def run(
        self,
        page_id: Optional[int] = None,
        since: Optional[datetime] = None,
        overwrite: bool = False,
        limit: Optional[int] = None,
        dry_run: bool = False,
        run_label: str = "Indexing knowledge base",
    ) -> IndexReport:
        """Select stale pages and index them, reporting progress to the notifier"""
        self._notify(ProgressEvent(stage=IndexingStage.SELECTING, message="Selecting pages"))
        documents = self.select_documents(page_id=page_id, since=since, overwrite=overwrite, limit=limit)
        self._tell("start", run_label, len(documents))

        try:
            report = self.reindex(documents, dry_run=dry_run)
        except IndexingError as e:
            self._tell("finish", success=False, message=str(e))
            raise

        summary = report.to_dict()
        self._tell(
            "finish",
            success=True,
            message=f"{summary['indexed']} pages indexed, {summary['skipped_empty']} skipped, "
                    f"{summary['total_chunks']} chunks",
        )
        return report

    def get_stats(self) -> dict:
        """Get indexer statistics"""
        stats = {
            'embedding_model': self.embedding_model,
            'chunk_tokens': self.config.chunk_tokens,
            'chunk_overlap': self.config.chunk_overlap,
            'embed_batch_size': self.config.embed_batch_size,
            'pages_indexed_this_session': self.indexed_count,
        }
        stats.update(self.chunks.get_stats())
        return stats
