"""
Notification Models - Stages of an indexing run and the events emitted per step

A run selects stale pages, then for each page chunks, embeds batch by batch
and replaces the stored chunk set. Every step produces a ProgressEvent that
notifiers render or forward.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional


class StageInfo(NamedTuple):
    emoji: str
    description: str


class IndexingStage(Enum):
    """Steps of an indexing run, in the order they occur"""
    SELECTING = "selecting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXING = "indexing"
    SKIPPED = "skipped"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def info(self) -> StageInfo:
        return STAGE_INFO.get(self, StageInfo("❓", "Unknown"))

    @property
    def is_terminal(self) -> bool:
        return self in (IndexingStage.COMPLETE, IndexingStage.ERROR)


STAGE_INFO = {
    IndexingStage.SELECTING: StageInfo("🔎", "Selecting pages"),
    IndexingStage.CHUNKING: StageInfo("✂️", "Chunking"),
    IndexingStage.EMBEDDING: StageInfo("🔢", "Embedding"),
    IndexingStage.INDEXING: StageInfo("💾", "Storing chunks"),
    IndexingStage.SKIPPED: StageInfo("⏭️", "Skipped"),
    IndexingStage.COMPLETE: StageInfo("✅", "Complete"),
    IndexingStage.ERROR: StageInfo("❌", "Error"),
}


@dataclass(frozen=True)
class ProgressEvent:
    """
    One progress step of an indexing run

    ``current``/``total`` count embedding batches for EMBEDDING events and
    pages for run-level events; both are 0 when the step has no counter.
    """
    stage: IndexingStage
    message: str
    current: int = 0
    total: int = 0
    timestamp: datetime = field(default_factory=datetime.now)
    page_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return 100.0 * self.current / self.total

    @property
    def is_complete(self) -> bool:
        return self.stage is IndexingStage.COMPLETE

    @property
    def is_error(self) -> bool:
        return self.stage is IndexingStage.ERROR

    @property
    def emoji(self) -> str:
        return self.stage.info.emoji

    @property
    def stage_description(self) -> str:
        return self.stage.info.description

    @property
    def counter(self) -> str:
        """``[current/total]`` or an empty string when there is no counter"""
        return f"[{self.current}/{self.total}]" if self.total > 0 else ""

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.name,
            "message": self.message,
            "page_id": self.page_id,
            "current": self.current,
            "total": self.total,
            "percentage": round(self.percentage, 1),
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        if not self.counter:
            return f"{self.emoji} {self.message}"
        return f"{self.emoji} {self.message} {self.counter} ({self.percentage:.0f}%)"
