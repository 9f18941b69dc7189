"""
KB RAG Retrieval Module

Hybrid search: keyword narrowing over search_terms, tag-filtered candidate
fetch, and cosine reranking of stored chunk embeddings.
"""

from kb_rag.retrieval.pipeline import HybridSearch
from kb_rag.retrieval.terms import extract_terms, extract_term_frequencies, STOPWORDS
from kb_rag.retrieval.keyword_search import KeywordSearch
from kb_rag.retrieval.candidate_fetch import CandidateFetch
from kb_rag.retrieval.reranker import VectorReranker, ScoredCandidate, cosine_similarity, parse_embedding

__all__ = [
    "HybridSearch",
    "extract_terms",
    "extract_term_frequencies",
    "STOPWORDS",
    "KeywordSearch",
    "CandidateFetch",
    "VectorReranker",
    "ScoredCandidate",
    "cosine_similarity",
    "parse_embedding",
]
