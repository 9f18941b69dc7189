"""
Chunk Store - Writes and inspects kb_chunk rows

Write methods take an open Connection so the indexer can group the delete
and all inserts for one page into a single transaction.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Connection

from kb_rag.models import ChunkRecord
from kb_rag.storage.executor import QueryExecutor
from kb_rag.storage.schema import kb_chunk

logger = logging.getLogger(__name__)


def serialize_embedding(embedding: Sequence[float]) -> str:
    return json.dumps([float(x) for x in embedding])


def _to_row(record: ChunkRecord) -> Dict[str, Any]:
    return {
        "page_id": record.page_id,
        "chunk_index": record.chunk_index,
        "chunk_type": record.chunk_type,
        "content": record.content,
        "embedding": serialize_embedding(record.embedding),
        "embedding_model": record.embedding_model,
        "source_updated_at": record.source_updated_at,
    }


class ChunkStore:
    """Persistence for chunk sets, one page at a time"""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    def delete_for_page(self, conn: Connection, page_id: int) -> int:
        result = conn.execute(delete(kb_chunk).where(kb_chunk.c.page_id == page_id))
        return result.rowcount or 0

    def insert_chunks(self, conn: Connection, records: List[ChunkRecord]) -> int:
        if not records:
            return 0
        conn.execute(insert(kb_chunk), [_to_row(r) for r in records])
        return len(records)

    def chunks_for_page(self, page_id: int) -> List[Mapping[str, Any]]:
        """Stored rows for a page in chunk_index order"""
        stmt = (
            select(kb_chunk)
            .where(kb_chunk.c.page_id == page_id)
            .order_by(kb_chunk.c.chunk_index)
        )
        return self.executor.fetch_all(stmt)

    def latest_source_update(self, page_id: int) -> Optional[datetime]:
        stmt = (
            select(func.max(kb_chunk.c.source_updated_at).label("latest_updated_at"))
            .where(kb_chunk.c.page_id == page_id)
        )
        rows = self.executor.fetch_all(stmt)
        return rows[0]["latest_updated_at"] if rows else None

    def get_stats(self) -> Dict[str, Any]:
        stmt = select(
            func.count(kb_chunk.c.id).label("total_chunks"),
            func.count(func.distinct(kb_chunk.c.page_id)).label("total_pages"),
        )
        row = self.executor.fetch_all(stmt)[0]
        return {
            "total_chunks": row["total_chunks"],
            "total_pages": row["total_pages"],
        }
