"""
KB RAG - Hybrid retrieval over a BookStack knowledge base

Indexes wiki pages into overlapping token-window chunks with embeddings and
answers free-text queries for ticket enrichment:
- Token-window chunking (500 tokens, 75 overlap)
- Incremental, per-page transactional re-indexing
- Keyword narrowing via BookStack's search_terms index
- Audience/status/product tag filtering
- Cosine reranking of chunk embeddings (OpenAI or Ollama)
"""

__version__ = "1.0.0"

from kb_rag.indexing.indexer import KnowledgeBaseIndexer
from kb_rag.retrieval.pipeline import HybridSearch

__all__ = [
    "KnowledgeBaseIndexer",
    "HybridSearch",
]
