"""Structural type shared by all notifiers"""

from typing import Protocol, runtime_checkable

from .models import ProgressEvent


@runtime_checkable
class NotifierInterface(Protocol):
    """
    Receives the lifecycle of one indexing run: ``start`` once, ``notify``
    per step, ``finish`` once. Implementations must not raise into the
    indexer; the indexer still guards each call.
    """

    def start(self, run_label: str, total_documents: int = 0) -> None: ...

    def notify(self, event: ProgressEvent) -> None: ...

    def finish(self, success: bool, message: str = "") -> None: ...
