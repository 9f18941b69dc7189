"""
Hybrid Search - Keyword pre-filtering followed by vector reranking

Retrieval architecture:
1. Term extraction from the query text
2. Keyword narrowing over BookStack's search_terms index (optional)
3. Tag-filtered candidate fetch (audience/status/product)
4. Cosine reranking of candidate chunk embeddings against the query embedding

Searches are read-only. A search sees each page either before or after a
concurrent re-index, never half-replaced, because re-indexing is transactional.
"""

import logging
import time
import uuid
from typing import List, Optional, Sequence

from kb_rag.config import RetrievalConfig
from kb_rag.indexing.embedder import BaseEmbedder
from kb_rag.models import KeywordCandidates, SearchFilters, SearchLimits, SearchResult
from kb_rag.retrieval.candidate_fetch import CandidateFetch
from kb_rag.retrieval.keyword_search import KeywordSearch
from kb_rag.retrieval.reranker import VectorReranker
from kb_rag.retrieval.terms import extract_terms
from kb_rag.storage.executor import QueryExecutor

logger = logging.getLogger(__name__)


class HybridSearch:
    """Complete retrieval pipeline: keyword narrowing, tag filtering, vector reranking"""

    def __init__(
        self,
        executor: QueryExecutor,
        config: Optional[RetrievalConfig] = None,
        embedder: Optional[BaseEmbedder] = None,
    ):
        """
        Initialize hybrid search

        Args:
            executor: Query executor for the BookStack database
            config: Retrieval defaults (limits, default tag filters)
            embedder: Embedding provider, only needed for search_text()
        """
        self.executor = executor
        self.config = config or RetrievalConfig()
        self.embedder = embedder

        self.keyword_search = KeywordSearch(executor)
        self.candidate_fetch = CandidateFetch(executor)
        self.reranker = VectorReranker(
            reject_dimension_mismatch=self.config.reject_dimension_mismatch
        )

    def default_filters(
        self,
        audience: Optional[str] = None,
        status: Optional[str] = None,
        product: Optional[str] = None,
    ) -> SearchFilters:
        """Filters with configured audience/status defaults filled in"""
        return SearchFilters(
            audience=audience or self.config.default_audience,
            status=status or self.config.default_status,
            product=product or None,
        )

    def search(
        self,
        query_embedding: Sequence[float],
        query_text: str,
        filters: Optional[SearchFilters] = None,
        limits: Optional[SearchLimits] = None,
        disable_keywords: bool = False,
    ) -> List[SearchResult]:
        """
        Retrieve the most relevant chunks for a query

        Args:
            query_embedding: Embedding of query_text
            query_text: Free-text query used for keyword narrowing
            filters: Tag constraints (None values are unconstrained)
            limits: candidate/keyword/term limits and top_k
            disable_keywords: Skip keyword narrowing entirely

        Returns:
            At most top_k results, highest cosine score first
        """
        filters = filters or SearchFilters()
        limits = limits or self.config.limits()
        start_time = time.time()
        trace_id = str(uuid.uuid4())

        # Step 1-2: keyword narrowing
        if disable_keywords:
            keyword_candidates = KeywordCandidates.unfiltered()
            terms: List[str] = []
        else:
            terms = extract_terms(query_text)[:max(0, limits.term_limit)]
            keyword_candidates = self.keyword_search.select(terms, limits.keyword_limit)

        # Step 3: tag-filtered candidates
        candidates = self.candidate_fetch.fetch(filters, keyword_candidates, limits.candidate_limit)

        # Step 4: vector reranking
        ranked = self.reranker.rerank(query_embedding, candidates, top_k=limits.top_k)

        results = [
            SearchResult(
                score=item.score,
                chunk_id=item.candidate.chunk_id,
                document_id=item.candidate.page_id,
                document_title=item.candidate.page_title,
                content=item.candidate.content,
            )
            for item in ranked
        ]

        latency_ms = int((time.time() - start_time) * 1000)
        keyword_desc = (
            "skipped" if keyword_candidates.is_unfiltered
            else f"{len(keyword_candidates.page_ids)} pages"
        )
        logger.info(
            f"search {trace_id[:8]}: terms={len(terms)} keyword={keyword_desc} "
            f"candidates={len(candidates)} results={len(results)} ({latency_ms} ms)"
        )
        return results

    def search_text(
        self,
        query_text: str,
        filters: Optional[SearchFilters] = None,
        limits: Optional[SearchLimits] = None,
        disable_keywords: bool = False,
    ) -> List[SearchResult]:
        """Embed the query with the configured embedder, then search()"""
        if self.embedder is None:
            raise ValueError("search_text() requires an embedder")
        query_embedding = self.embedder.embed(query_text)
        return self.search(query_embedding, query_text, filters, limits, disable_keywords)

    def format_results(self, results: List[SearchResult], excerpt_chars: int = 300) -> str:
        """
        Format retrieval results for display

        Args:
            results: Search results
            excerpt_chars: Maximum characters of chunk content to show

        Returns:
            Human-readable listing, one block per result
        """
        if not results:
            return "No results found."

        blocks = []
        for result in results:
            blocks.append(
                f"score={result.score:.6f} page_id={result.document_id} title={result.document_title}\n"
                f"{result.content[:excerpt_chars]}\n"
                f"---"
            )
        return "\n".join(blocks)

    def get_stats(self) -> dict:
        """Get pipeline statistics"""
        stats = {
            'keyword_search': self.keyword_search.get_stats(),
            'reranker': self.reranker.get_stats(),
            'quarantined_rows': self.candidate_fetch.quarantined,
        }
        if self.embedder:
            stats['embedder'] = self.embedder.get_stats()
        return stats
