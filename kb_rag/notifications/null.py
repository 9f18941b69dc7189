"""Notifier that discards everything (used when all channels are disabled)"""

from .models import ProgressEvent


class NullNotifier:

    def start(self, run_label: str, total_documents: int = 0) -> None:
        return None

    def notify(self, event: ProgressEvent) -> None:
        return None

    def finish(self, success: bool, message: str = "") -> None:
        return None
