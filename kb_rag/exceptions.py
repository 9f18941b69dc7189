"""
KB RAG Exceptions - Error types raised by the indexing and retrieval core

Every error derives from KBRagError so callers can catch the whole family.
External failures (SQLAlchemy, OpenAI, Ollama) are chained with ``raise ... from``.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from kb_rag.models import IndexReport


class KBRagError(Exception):
    """Base class for all KB RAG errors"""
    pass


class ConfigurationError(KBRagError):
    """Missing or invalid configuration (raised before any work starts)"""
    pass


class EmbeddingError(KBRagError):
    """Embedding provider failed or returned an unusable response"""
    pass


class StorageError(KBRagError):
    """Database read or write failed"""
    pass


class MalformedRowError(KBRagError):
    """A storage row does not have the shape of the expected record"""
    pass


class IndexingError(KBRagError):
    """
    Indexing run aborted on a document

    The failing document's transaction has already been rolled back.
    Documents committed earlier in the run stay indexed.

    Attributes:
        document_id: Page whose re-index failed
        report: Outcomes recorded up to and including the failure
    """

    def __init__(self, message: str, document_id: int, report: Optional["IndexReport"] = None):
        super().__init__(message)
        self.document_id = document_id
        self.report = report
