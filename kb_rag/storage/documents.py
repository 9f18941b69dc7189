"""
Document Store - Read BookStack pages that need (re)indexing

A page is eligible when it is a non-deleted, non-draft, non-template page.
Unless overwrite is requested, only stale pages are returned: pages with no
chunks yet, or whose newest chunk source timestamp is older than the page.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import false, func, or_, select

from kb_rag.exceptions import MalformedRowError
from kb_rag.models import Document
from kb_rag.storage.executor import QueryExecutor
from kb_rag.storage.schema import PAGE_ENTITY_TYPE, entities, entity_page_data, kb_chunk

logger = logging.getLogger(__name__)


def eligible_page_conditions():
    """WHERE clauses shared by indexing and retrieval"""
    return (
        entities.c.type == PAGE_ENTITY_TYPE,
        entities.c.deleted_at.is_(None),
        entity_page_data.c.draft == false(),
        entity_page_data.c.template == false(),
    )


class DocumentStore:
    """Staleness-aware page selection"""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    def build_selection(
        self,
        page_id: Optional[int] = None,
        since: Optional[datetime] = None,
        overwrite: bool = False,
        limit: Optional[int] = None,
    ):
        latest = (
            select(
                kb_chunk.c.page_id,
                func.max(kb_chunk.c.source_updated_at).label("latest_updated_at"),
            )
            .group_by(kb_chunk.c.page_id)
            .subquery("kc")
        )

        stmt = (
            select(
                entities.c.id,
                entities.c.name,
                entities.c.updated_at,
                entity_page_data.c.text,
            )
            .select_from(
                entities
                .join(entity_page_data, entity_page_data.c.page_id == entities.c.id)
                .outerjoin(latest, latest.c.page_id == entities.c.id)
            )
            .where(*eligible_page_conditions())
        )

        if page_id is not None:
            stmt = stmt.where(entities.c.id == page_id)
        if since is not None:
            stmt = stmt.where(entities.c.updated_at >= since)
        if not overwrite:
            stmt = stmt.where(or_(
                latest.c.latest_updated_at.is_(None),
                latest.c.latest_updated_at < entities.c.updated_at,
            ))

        stmt = stmt.order_by(entities.c.updated_at.asc(), entities.c.id.asc())
        if limit is not None:
            stmt = stmt.limit(max(1, int(limit)))
        return stmt

    def select_for_indexing(
        self,
        page_id: Optional[int] = None,
        since: Optional[datetime] = None,
        overwrite: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """
        Select pages to (re)index, oldest update first

        Args:
            page_id: Restrict to a single page
            since: Only pages updated at or after this time
            overwrite: Include pages whose chunks are already current
            limit: Maximum number of pages

        Returns:
            Documents in ascending updated_at order
        """
        rows = self.executor.fetch_all(self.build_selection(page_id, since, overwrite, limit))

        documents = []
        for row in rows:
            try:
                documents.append(Document.from_row(row))
            except MalformedRowError as e:
                logger.warning(f"Skipping malformed page row: {e}")
        return documents
