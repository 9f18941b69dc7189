"""
Vector Reranker - Cosine similarity between query and stored chunk embeddings

Candidates arrive from the tag-filtered fetch in a deterministic order. Each
stored embedding is parsed and scored against the query embedding; the list
is sorted by score (stable, so equal scores keep fetch order) and cut to top_k.

Stored embeddings that are missing, non-numeric, non-finite or empty are
dropped without raising: one bad row should not fail a query.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import numpy as np

from kb_rag.models import Candidate

logger = logging.getLogger(__name__)


def parse_embedding(raw: Any) -> Optional[np.ndarray]:
    """
    Parse a stored embedding into a float vector

    Accepts JSON text/bytes or a sequence of numbers.

    Returns:
        1-D float64 array, or None when the value is unusable
    """
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, (list, tuple, np.ndarray)) or len(raw) == 0:
        return None
    if any(isinstance(x, (bool, str)) for x in raw):
        return None
    try:
        vector = np.asarray(raw, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if vector.ndim != 1 or not np.all(np.isfinite(vector)):
        return None
    return vector


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity with zero-padding for unequal lengths

    The shorter vector is padded with zeros. Returns 0.0 when either norm is 0.
    """
    vec1 = np.asarray(a, dtype=np.float64)
    vec2 = np.asarray(b, dtype=np.float64)

    size = max(vec1.size, vec2.size)
    if vec1.size < size:
        vec1 = np.pad(vec1, (0, size - vec1.size))
    if vec2.size < size:
        vec2 = np.pad(vec2, (0, size - vec2.size))

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(vec1, vec2) / (norm1 * norm2))


@dataclass(frozen=True)
class ScoredCandidate:
    score: float
    candidate: Candidate


class VectorReranker:
    """Rerank candidates by cosine similarity to the query embedding"""

    def __init__(self, reject_dimension_mismatch: bool = False):
        """
        Initialize reranker

        Args:
            reject_dimension_mismatch: Drop candidates whose embedding size
                differs from the query instead of zero-padding them
        """
        self.reject_dimension_mismatch = reject_dimension_mismatch
        self.last_dropped = 0
        self.last_mismatched = 0

    def rerank(
        self,
        query_embedding: Sequence[float],
        candidates: List[Candidate],
        top_k: int = 5
    ) -> List[ScoredCandidate]:
        """
        Score and rank candidates

        Args:
            query_embedding: Query vector
            candidates: Candidates in fetch order
            top_k: Number of results to return

        Returns:
            At most top_k scored candidates, highest score first
        """
        query = np.asarray(query_embedding, dtype=np.float64)
        dropped = 0
        mismatched = 0

        scored = []
        for candidate in candidates:
            stored = parse_embedding(candidate.embedding)
            if stored is None:
                dropped += 1
                continue
            if stored.size != query.size:
                mismatched += 1
                if self.reject_dimension_mismatch:
                    continue
            scored.append(ScoredCandidate(cosine_similarity(stored, query), candidate))

        if dropped:
            logger.debug(f"Dropped {dropped} candidates with unusable embeddings")
        if mismatched:
            action = "rejected" if self.reject_dimension_mismatch else "zero-padded"
            logger.warning(
                f"{mismatched} candidates have embedding dimensions different from the "
                f"query ({query.size}); {action}. Check embedding_model consistency."
            )
        self.last_dropped = dropped
        self.last_mismatched = mismatched

        reranked = sorted(scored, key=lambda x: x.score, reverse=True)
        return reranked[:max(0, int(top_k))]

    def get_stats(self) -> dict:
        """Get reranker statistics"""
        return {
            'similarity': 'cosine',
            'reject_dimension_mismatch': self.reject_dimension_mismatch,
            'last_dropped': self.last_dropped,
            'last_mismatched': self.last_mismatched
        }
