"""
Term Extraction - Reduce free text to ranked keywords for lexical narrowing

Keywords are lowercase alphanumeric tokens of 3+ characters that are not
common English function words, ranked by frequency (ties keep first
occurrence order).
"""

import re
from collections import Counter
from typing import List

from kb_rag.models import Term

MIN_TERM_LENGTH = 3

STOPWORDS = frozenset([
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "from",
    "has", "have", "he", "her", "his", "i", "in", "into", "is", "it", "its",
    "me", "my", "not", "of", "on", "or", "our", "she", "that", "the", "their",
    "them", "there", "they", "this", "to", "was", "we", "were", "what", "when",
    "where", "which", "who", "will", "with", "you", "your",
])

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _keyword_tokens(text: str) -> List[str]:
    normalized = _NON_ALNUM.sub(" ", (text or "").lower()).strip()
    return [
        token for token in normalized.split(" ")
        if len(token) >= MIN_TERM_LENGTH and token not in STOPWORDS
    ]


def extract_term_frequencies(text: str) -> List[Term]:
    """Distinct keywords with counts, most frequent first"""
    # Counter keeps insertion order and sorted() is stable, so ties stay in
    # first-occurrence order.
    counts = Counter(_keyword_tokens(text))
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [Term(term=term, frequency=count) for term, count in ranked]


def extract_terms(text: str) -> List[str]:
    """
    Extract distinct keywords ordered by descending frequency

    Example:
        >>> extract_terms("the cat sat on the mat")
        ['cat', 'sat', 'mat']
    """
    return [t.term for t in extract_term_frequencies(text)]
