"""
Keyword Search - Lexical pre-filter over BookStack's search_terms index

BookStack maintains a per-page inverted index (term, score). Pages matching
any query term are ranked by the sum of their term scores. The result only
narrows the set of pages whose chunks are vector-reranked; it is never the
final ranking.
"""

import logging
from typing import List, Sequence

from sqlalchemy import func, select

from kb_rag.models import KeywordCandidates
from kb_rag.storage.executor import QueryExecutor
from kb_rag.storage.schema import PAGE_ENTITY_TYPE, search_terms

logger = logging.getLogger(__name__)


class KeywordSearch:
    """Page candidate selection via summed term scores"""

    def __init__(self, executor: QueryExecutor):
        """
        Initialize keyword search

        Args:
            executor: Query executor for the BookStack database
        """
        self.executor = executor
        self.queries_run = 0

    def build_query(self, terms: Sequence[str], limit: int):
        score = func.sum(search_terms.c.score).label("score")
        return (
            select(search_terms.c.entity_id.label("page_id"), score)
            .where(
                search_terms.c.entity_type == PAGE_ENTITY_TYPE,
                search_terms.c.term.in_(list(terms)),
            )
            .group_by(search_terms.c.entity_id)
            .order_by(score.desc(), search_terms.c.entity_id.asc())
            .limit(max(1, int(limit)))
        )

    def select(self, terms: Sequence[str], limit: int = 200) -> KeywordCandidates:
        """
        Select candidate pages for the given terms

        Args:
            terms: Keywords (already truncated to the term limit)
            limit: Maximum number of pages

        Returns:
            KeywordCandidates.unfiltered() when there are no terms (no lexical
            narrowing possible), otherwise KeywordCandidates.matched(page_ids)
            in descending score order. An empty match restricts to nothing.
        """
        if not terms:
            logger.debug("No keyword terms, skipping lexical narrowing")
            return KeywordCandidates.unfiltered()

        rows = self.executor.fetch_all(self.build_query(terms, limit))
        self.queries_run += 1

        page_ids: List[int] = [row["page_id"] for row in rows]
        logger.debug(f"Keyword search matched {len(page_ids)} pages for {len(terms)} terms")
        return KeywordCandidates.matched(page_ids)

    def get_stats(self) -> dict:
        """Get keyword search statistics"""
        return {
            'queries_run': self.queries_run,
            'index': 'search_terms'
        }
