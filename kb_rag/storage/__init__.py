"""
KB RAG Storage Module

SQLAlchemy schema, query executor, and the document/chunk stores used by the
indexer. Retrieval queries live next to their components in kb_rag.retrieval.
"""

from kb_rag.storage.executor import QueryExecutor, create_db_engine
from kb_rag.storage.documents import DocumentStore
from kb_rag.storage.chunks import ChunkStore, serialize_embedding
from kb_rag.storage.schema import metadata, create_chunk_table

__all__ = [
    "QueryExecutor",
    "create_db_engine",
    "DocumentStore",
    "ChunkStore",
    "serialize_embedding",
    "metadata",
    "create_chunk_table",
]
