"""
Candidate Fetch - Chunk rows for eligible pages under tag constraints

Tag rule per key (audience, status, product): a None filter value applies no
constraint; otherwise a page matches when it carries that tag with the
requested value, or carries no tag of that key at all.
"""

import logging
from typing import List, Optional

from sqlalchemy import exists, or_, select

from kb_rag.exceptions import MalformedRowError
from kb_rag.models import Candidate, KeywordCandidates, SearchFilters
from kb_rag.storage.documents import eligible_page_conditions
from kb_rag.storage.executor import QueryExecutor
from kb_rag.storage.schema import PAGE_ENTITY_TYPE, entities, entity_page_data, kb_chunk, tags

logger = logging.getLogger(__name__)


def tag_condition(name: str, value: str):
    """Page has tag ``name`` equal to ``value`` or has no ``name`` tag"""
    tag_of_key = select(tags.c.id).where(
        tags.c.entity_id == entities.c.id,
        tags.c.entity_type == PAGE_ENTITY_TYPE,
        tags.c.name == name,
    )
    return or_(
        ~exists(tag_of_key),
        exists(tag_of_key.where(tags.c.value == value)),
    )


class CandidateFetch:
    """Fetch chunk candidates for vector reranking"""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor
        self.quarantined = 0

    def build_query(
        self,
        filters: SearchFilters,
        keyword_candidates: Optional[KeywordCandidates],
        limit: int,
    ):
        stmt = (
            select(
                kb_chunk.c.id,
                kb_chunk.c.page_id,
                entities.c.name.label("page_title"),
                kb_chunk.c.content,
                kb_chunk.c.embedding,
            )
            .select_from(
                kb_chunk
                .join(entities, entities.c.id == kb_chunk.c.page_id)
                .join(entity_page_data, entity_page_data.c.page_id == entities.c.id)
            )
            .where(*eligible_page_conditions())
        )

        for name, value in filters.as_tag_constraints():
            if value is not None:
                stmt = stmt.where(tag_condition(name, value))

        if keyword_candidates is not None and not keyword_candidates.is_unfiltered:
            stmt = stmt.where(kb_chunk.c.page_id.in_(list(keyword_candidates.page_ids)))

        return stmt.order_by(kb_chunk.c.id.asc()).limit(max(1, int(limit)))

    def fetch(
        self,
        filters: SearchFilters,
        keyword_candidates: Optional[KeywordCandidates] = None,
        limit: int = 2000,
    ) -> List[Candidate]:
        """
        Fetch candidate chunks

        Args:
            filters: Audience/status/product constraints
            keyword_candidates: Page narrowing from keyword search; None or
                UNFILTERED applies no page restriction
            limit: Maximum number of rows

        Returns:
            Candidates in ascending chunk id order
        """
        if keyword_candidates is not None and keyword_candidates.matched_none:
            logger.debug("Keyword search matched no pages, no candidates to fetch")
            return []

        rows = self.executor.fetch_all(self.build_query(filters, keyword_candidates, limit))

        candidates = []
        for row in rows:
            try:
                candidates.append(Candidate.from_row(row))
            except MalformedRowError as e:
                self.quarantined += 1
                logger.warning(f"Quarantined malformed chunk row: {e}")
        return candidates
