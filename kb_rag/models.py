"""
Domain Models - Records passed between storage, indexing and retrieval

Rows coming out of the database are converted into these records at the
storage boundary (``from_row``). A row that does not have the expected shape
raises MalformedRowError instead of leaking ad hoc field access downstream.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, FrozenSet, List, Mapping, Optional, Sequence

from kb_rag.exceptions import MalformedRowError


def _require(row: Mapping[str, Any], key: str) -> Any:
    try:
        return row[key]
    except KeyError:
        raise MalformedRowError(f"Row is missing column '{key}': {dict(row)!r}") from None


def _require_int(row: Mapping[str, Any], key: str) -> int:
    value = _require(row, key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRowError(f"Column '{key}' must be an integer, got {value!r}")
    return value


def _optional_str(row: Mapping[str, Any], key: str) -> Optional[str]:
    value = row.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedRowError(f"Column '{key}' must be text, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class Document:
    """A wiki page eligible for indexing"""
    id: int
    updated_at: datetime
    text: str
    title: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Document":
        updated_at = _require(row, "updated_at")
        if not isinstance(updated_at, datetime):
            raise MalformedRowError(f"Column 'updated_at' must be a datetime, got {updated_at!r}")
        return cls(
            id=_require_int(row, "id"),
            updated_at=updated_at,
            text=_optional_str(row, "text") or "",
            title=_optional_str(row, "name"),
        )


@dataclass(frozen=True)
class ChunkRecord:
    """One kb_chunk row as written by the indexer"""
    page_id: int
    chunk_index: int
    content: str
    embedding: Sequence[float]
    embedding_model: str
    source_updated_at: datetime
    chunk_type: Optional[str] = None


@dataclass(frozen=True)
class Term:
    """Normalized keyword with its frequency inside one extraction"""
    term: str
    frequency: int


@dataclass(frozen=True)
class Candidate:
    """A chunk joined with its page title, alive only during one query"""
    chunk_id: int
    page_id: int
    page_title: str
    content: str
    embedding: Any = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Candidate":
        content = _require(row, "content")
        if not isinstance(content, str):
            raise MalformedRowError(f"Column 'content' must be text, got {type(content).__name__}")
        return cls(
            chunk_id=_require_int(row, "id"),
            page_id=_require_int(row, "page_id"),
            page_title=_optional_str(row, "page_title") or "",
            content=content,
            embedding=row.get("embedding"),
        )


@dataclass(frozen=True)
class SearchResult:
    """Ranked retrieval hit"""
    score: float
    chunk_id: int
    document_id: int
    document_title: str
    content: str

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "id": self.chunk_id,
            "page_id": self.document_id,
            "page_title": self.document_title,
            "content": self.content,
        }


@dataclass(frozen=True)
class SearchFilters:
    """Tag constraints; None means "no constraint" for that key"""
    audience: Optional[str] = None
    status: Optional[str] = None
    product: Optional[str] = None

    def as_tag_constraints(self) -> List[tuple]:
        return [
            ("audience", self.audience),
            ("status", self.status),
            ("product", self.product),
        ]


@dataclass(frozen=True)
class SearchLimits:
    """Size limits for each stage of a hybrid search"""
    candidate_limit: int = 2000
    keyword_limit: int = 200
    term_limit: int = 20
    top_k: int = 5


class KeywordFilterMode(Enum):
    UNFILTERED = "unfiltered"
    MATCHED = "matched"


@dataclass(frozen=True)
class KeywordCandidates:
    """
    Outcome of keyword narrowing

    UNFILTERED: keyword search was skipped or had no usable terms, so the
    candidate fetch must not restrict page ids.
    MATCHED: keyword search ran; ``page_ids`` holds the hits in score order.
    An empty ``page_ids`` means it matched nothing and restricts to nothing.
    """
    mode: KeywordFilterMode
    page_ids: Sequence[int] = ()

    @classmethod
    def unfiltered(cls) -> "KeywordCandidates":
        return cls(KeywordFilterMode.UNFILTERED)

    @classmethod
    def matched(cls, page_ids: Sequence[int]) -> "KeywordCandidates":
        return cls(KeywordFilterMode.MATCHED, tuple(page_ids))

    @property
    def is_unfiltered(self) -> bool:
        return self.mode is KeywordFilterMode.UNFILTERED

    @property
    def matched_none(self) -> bool:
        return self.mode is KeywordFilterMode.MATCHED and not self.page_ids

    def id_set(self) -> FrozenSet[int]:
        return frozenset(self.page_ids)


class IndexStatus(Enum):
    """Per-document result of an indexing run"""
    INDEXED = "indexed"
    SKIPPED_EMPTY = "skipped_empty"
    DRY_RUN = "dry_run"
    FAILED = "failed"


@dataclass(frozen=True)
class IndexOutcome:
    document_id: int
    status: IndexStatus
    chunk_count: int = 0
    error: Optional[str] = None


@dataclass
class IndexReport:
    """Outcomes of one indexing run, in processing order"""
    outcomes: List[IndexOutcome] = field(default_factory=list)

    def add(self, outcome: IndexOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: IndexStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def indexed(self) -> int:
        return self.count(IndexStatus.INDEXED)

    @property
    def skipped(self) -> int:
        return self.count(IndexStatus.SKIPPED_EMPTY)

    @property
    def failed(self) -> int:
        return self.count(IndexStatus.FAILED)

    @property
    def total_chunks(self) -> int:
        return sum(o.chunk_count for o in self.outcomes if o.status is IndexStatus.INDEXED)

    def to_dict(self) -> dict:
        return {
            "documents": len(self.outcomes),
            "indexed": self.indexed,
            "skipped_empty": self.skipped,
            "failed": self.failed,
            "total_chunks": self.total_chunks,
        }
