"""Forward one indexing run to several notifiers"""

import logging
from typing import Iterable, List

from .interface import NotifierInterface
from .models import ProgressEvent

logger = logging.getLogger(__name__)


class CompositeNotifier:
    """A failing notifier is logged and skipped; the rest still receive the call"""

    def __init__(self, notifiers: Iterable[NotifierInterface]):
        self.notifiers: List[NotifierInterface] = list(notifiers)

    def add(self, notifier: NotifierInterface) -> None:
        self.notifiers.append(notifier)

    def __len__(self) -> int:
        return len(self.notifiers)

    def _each(self, method: str, *args) -> None:
        for notifier in self.notifiers:
            try:
                getattr(notifier, method)(*args)
            except Exception as e:
                logger.warning(f"{type(notifier).__name__}.{method} failed: {e}")

    def start(self, run_label: str, total_documents: int = 0) -> None:
        self._each("start", run_label, total_documents)

    def notify(self, event: ProgressEvent) -> None:
        self._each("notify", event)

    def finish(self, success: bool, message: str = "") -> None:
        self._each("finish", success, message)
