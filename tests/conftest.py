"""
Shared fixtures: an in-memory SQLite BookStack schema and a fake embedder.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

import pytest
from sqlalchemy import insert, update

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from kb_rag.config import DatabaseConfig
from kb_rag.storage import ChunkStore, QueryExecutor, create_db_engine, metadata
from kb_rag.storage.schema import entities, entity_page_data, kb_chunk, search_terms, tags

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


class KnowledgeBase:
    """Helpers for seeding pages, tags, terms and chunks"""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor
        self.chunk_store = ChunkStore(executor)

    def add_page(
        self,
        page_id: int,
        text: Optional[str],
        name: Optional[str] = None,
        updated_at: datetime = BASE_TIME,
        draft: bool = False,
        template: bool = False,
        deleted: bool = False,
        entity_type: str = "page",
    ) -> None:
        with self.executor.transaction() as conn:
            conn.execute(insert(entities).values(
                id=page_id,
                type=entity_type,
                name=name or f"Page {page_id}",
                updated_at=updated_at,
                deleted_at=updated_at if deleted else None,
            ))
            conn.execute(insert(entity_page_data).values(
                page_id=page_id, text=text, draft=draft, template=template,
            ))

    def edit_page(self, page_id: int, text: str, updated_at: datetime) -> None:
        with self.executor.transaction() as conn:
            conn.execute(update(entities).where(entities.c.id == page_id).values(updated_at=updated_at))
            conn.execute(
                update(entity_page_data)
                .where(entity_page_data.c.page_id == page_id)
                .values(text=text)
            )

    def add_tag(self, page_id: int, name: str, value: str) -> None:
        with self.executor.transaction() as conn:
            conn.execute(insert(tags).values(
                entity_id=page_id, entity_type="page", name=name, value=value,
            ))

    def add_term(self, page_id: int, term: str, score: int) -> None:
        with self.executor.transaction() as conn:
            conn.execute(insert(search_terms).values(
                entity_id=page_id, entity_type="page", term=term, score=score,
            ))

    def add_chunk(self, page_id: int, chunk_index: int, content: str, embedding) -> None:
        with self.executor.transaction() as conn:
            conn.execute(insert(kb_chunk).values(
                page_id=page_id,
                chunk_index=chunk_index,
                content=content,
                embedding=embedding,
                embedding_model="test-model",
                source_updated_at=BASE_TIME,
            ))

    def chunks(self, page_id: int) -> List[dict]:
        return [dict(row) for row in self.chunk_store.chunks_for_page(page_id)]


class FakeEmbedder:
    """Deterministic embedding function that records its calls"""

    def __init__(self, fail_on_call: Optional[int] = None):
        self.calls = []
        self.fail_on_call = fail_on_call

    @staticmethod
    def vector_for(text: str) -> List[float]:
        words = text.split(" ")
        return [float(len(words)), float(len(text)), 1.0]

    def __call__(self, model: str, texts: List[str]) -> List[List[float]]:
        self.calls.append((model, list(texts)))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise RuntimeError("embedding service unavailable")
        return [self.vector_for(t) for t in texts]


@pytest.fixture
def executor():
    engine = create_db_engine(DatabaseConfig(url="sqlite://"))
    metadata.create_all(engine)
    yield QueryExecutor(engine)
    engine.dispose()


@pytest.fixture
def kb(executor):
    return KnowledgeBase(executor)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


def later(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)
