"""Console Notifier - Terminal progress display for indexing runs"""

import sys
import time
from typing import Optional, TextIO

from .models import ProgressEvent


class ConsoleNotifier:
    """Console-based progress notifier with per-run progress bar."""

    def __init__(
        self,
        output: TextIO = sys.stderr,
        show_progress_bar: bool = True,
        verbose: bool = False,
        use_colors: Optional[bool] = None,
    ):
        self.output = output
        self.show_progress_bar = show_progress_bar
        self.verbose = verbose
        if use_colors is None:
            isatty = getattr(output, "isatty", None)
            use_colors = bool(isatty and isatty())
        self.use_colors = use_colors
        self._started: Optional[float] = None
        self._total_documents = 0

    def _color(self, text: str, code: str) -> str:
        return f"\033[{code}m{text}\033[0m" if self.use_colors else text

    def _progress_bar(self, current: int, total: int, width: int = 20) -> str:
        if total <= 0:
            return ""
        filled = int(width * min(current, total) / total)
        bar = "█" * filled + "░" * (width - filled)
        return f"[{bar}] {current}/{total}"

    def _write(self, line: str) -> None:
        print(line, file=self.output)

    def start(self, run_label: str, total_documents: int = 0) -> None:
        self._started = time.monotonic()
        self._total_documents = total_documents
        suffix = f" ({total_documents} pages)" if total_documents else ""
        self._write(f"\n📚 {self._color(run_label, '36')}{suffix}")

    def notify(self, event: ProgressEvent) -> None:
        if event.is_error:
            self._write(f"   {self._color('❌ ' + (event.error or event.message), '31')}")
            return
        if event.is_complete:
            return
        # Batch-level events are noise unless verbose
        if event.page_id is not None and event.total > 1 and not self.verbose:
            return

        line = f"   {event.emoji} {event.message}"
        if self.show_progress_bar and event.total > 0:
            line += f" {self._color(self._progress_bar(event.current, event.total), '90')}"
        self._write(line)

    def finish(self, success: bool, message: str = "") -> None:
        elapsed = time.monotonic() - self._started if self._started is not None else 0.0
        duration = self._color(f"({elapsed:.1f}s)", '90')
        if success:
            self._write(f"   {self._color('✅', '32')} {message or 'Complete'} {duration}")
        else:
            self._write(f"   {self._color('❌', '31')} {message or 'Failed'} {duration}")
        self._started = None
