"""
KB RAG Indexing Module

Handles token-window chunking, batched embedding, and transactional
per-page replacement of stored chunks.
"""

from kb_rag.indexing.indexer import KnowledgeBaseIndexer
from kb_rag.indexing.chunker import TokenWindowChunker, Chunk, chunk_text, tokenize
from kb_rag.indexing.embedder import (
    BaseEmbedder,
    EmbeddingFunction,
    OllamaEmbedder,
    OpenAIEmbedder,
    create_embedder,
)

__all__ = [
    "KnowledgeBaseIndexer",
    "TokenWindowChunker",
    "Chunk",
    "chunk_text",
    "tokenize",
    "BaseEmbedder",
    "EmbeddingFunction",
    "OllamaEmbedder",
    "OpenAIEmbedder",
    "create_embedder",
]
