"""
Token Window Chunker - Fixed-size overlapping windows over whitespace tokens

Pages are normalized (whitespace runs collapsed, trimmed), split on spaces,
and cut into windows of at most ``max_tokens`` tokens. Consecutive windows
share ``overlap_tokens`` tokens so a sentence cut at a boundary still appears
whole in one of the two neighbours.

Defaults: 500-token windows with 75 tokens (15%) of overlap.
"""

import re
from dataclasses import dataclass
from typing import Dict, List

_WHITESPACE = re.compile(r"\s+")


@dataclass
class Chunk:
    """Represents a document chunk"""
    text: str
    chunk_index: int
    start_token: int
    end_token: int

    @property
    def token_count(self) -> int:
        return self.end_token - self.start_token


def tokenize(text: str) -> List[str]:
    """Collapse whitespace, trim, and split on single spaces"""
    normalized = _WHITESPACE.sub(" ", text or "").strip()
    if not normalized:
        return []
    return normalized.split(" ")


def _windows(token_count: int, max_tokens: int, overlap_tokens: int) -> List[tuple]:
    if max_tokens < 1:
        raise ValueError(f"max_tokens must be >= 1, got {max_tokens}")
    if overlap_tokens < 0:
        raise ValueError(f"overlap_tokens must be >= 0, got {overlap_tokens}")

    windows = []
    start = 0
    while start < token_count:
        end = min(start + max_tokens, token_count)
        windows.append((start, end))
        if end == token_count:
            break
        # Advance by at least one token so the loop always reaches the end,
        # even when overlap_tokens >= max_tokens.
        start = max(start + 1, end - overlap_tokens)
    return windows


def chunk_text(text: str, max_tokens: int, overlap_tokens: int) -> List[str]:
    """
    Split text into overlapping token windows

    Args:
        text: Raw page text
        max_tokens: Maximum tokens per chunk (>= 1)
        overlap_tokens: Tokens shared between consecutive chunks (>= 0)

    Returns:
        Chunk strings in order; empty list when the text has no tokens
    """
    tokens = tokenize(text)
    return [" ".join(tokens[s:e]) for s, e in _windows(len(tokens), max_tokens, overlap_tokens)]


class TokenWindowChunker:
    """Chunker bound to one window configuration"""

    def __init__(self, max_tokens: int = 500, overlap_tokens: int = 75):
        if max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {max_tokens}")
        if overlap_tokens < 0:
            raise ValueError(f"overlap_tokens must be >= 0, got {overlap_tokens}")
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens

    def chunk_document(self, content: str) -> List[Chunk]:
        """
        Chunk a document into token windows

        Args:
            content: Document text

        Returns:
            List of Chunk objects with contiguous chunk_index starting at 0
        """
        tokens = tokenize(content)
        return [
            Chunk(
                text=" ".join(tokens[start:end]),
                chunk_index=index,
                start_token=start,
                end_token=end,
            )
            for index, (start, end) in enumerate(
                _windows(len(tokens), self.max_tokens, self.overlap_tokens)
            )
        ]

    def get_stats(self, chunks: List[Chunk]) -> Dict:
        """Get chunking statistics"""
        if not chunks:
            return {}

        token_counts = [c.token_count for c in chunks]

        return {
            'total_chunks': len(chunks),
            'avg_tokens': sum(token_counts) / len(token_counts),
            'min_tokens': min(token_counts),
            'max_tokens': max(token_counts)
        }
