"""
Webhook Notifier - Post indexing run progress to Slack, Discord or any JSON endpoint

Progress events are posted from a background thread and rate limited;
the final run summary is posted synchronously so it is not lost when the
process exits right after indexing.
"""

import json
import logging
import os
import re
import threading
import time
from typing import Any, Callable, Dict, List, NamedTuple, Optional
from urllib.request import Request, urlopen

from .models import IndexingStage, ProgressEvent

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]

_ENV_REF = re.compile(r"\$\{([^}]+)\}")

# Discord embed colours
BLUE = 3447003
YELLOW = 16776960
GREEN = 5763719
RED = 15548997


class WebhookTemplate(NamedTuple):
    """Payload builders for one webhook flavour"""
    start: Callable[[str, int], Payload]
    progress: Callable[[ProgressEvent], Payload]
    finish: Callable[[bool, str, float], Payload]


def _slack_text(text: str) -> Payload:
    return {"blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]}


def _discord_embed(title: str, description: str, color: int) -> Payload:
    return {"embeds": [{"title": title, "description": description, "color": color}]}


def _finish_title(success: bool) -> str:
    return "✅ Indexing complete" if success else "❌ Indexing failed"


SLACK = WebhookTemplate(
    start=lambda label, pages: _slack_text(f"📚 *Indexing started*\n{label} ({pages} pages)"),
    progress=lambda e: _slack_text(f"{e.emoji} *{e.stage_description}*\n{e.message}"),
    finish=lambda ok, msg, secs: _slack_text(f"*{_finish_title(ok)}*\n{msg}\n_Duration: {secs:.1f}s_"),
)

DISCORD = WebhookTemplate(
    start=lambda label, pages: _discord_embed("📚 Indexing started", f"{label} ({pages} pages)", BLUE),
    progress=lambda e: _discord_embed(f"{e.emoji} {e.stage_description}", e.message, YELLOW),
    finish=lambda ok, msg, secs: _discord_embed(_finish_title(ok), f"{msg} ({secs:.1f}s)", GREEN if ok else RED),
)

GENERIC = WebhookTemplate(
    start=lambda label, pages: {"event": "indexing_start", "run": label, "total_documents": pages},
    progress=lambda e: {"event": "indexing_progress", **e.to_dict()},
    finish=lambda ok, msg, secs: {
        "event": "indexing_complete", "success": ok, "message": msg, "duration_seconds": secs,
    },
)

WEBHOOK_TEMPLATES: Dict[str, WebhookTemplate] = {
    "slack": SLACK,
    "discord": DISCORD,
    "generic": GENERIC,
}


def expand_url(url: str) -> str:
    """Replace ${VAR} references with environment values (unset vars are kept)"""
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), m.group(0)), url)


class WebhookNotifier:
    """POSTs JSON payloads for run start, progress steps and run end"""

    def __init__(
        self,
        url: str,
        template: str = "generic",
        notify_stages: Optional[List[IndexingStage]] = None,
        min_interval: float = 2.0,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = 10,
    ):
        """
        Args:
            url: Endpoint, may contain ${VAR} references
            template: slack, discord or generic (unknown names fall back to generic)
            notify_stages: Only post these stages (default: all)
            min_interval: Minimum seconds between progress posts
            headers: Extra HTTP headers
            timeout: Request timeout in seconds
        """
        self.url = expand_url(url)
        if template not in WEBHOOK_TEMPLATES:
            logger.warning(f"Unknown webhook template '{template}', using generic")
        self.template = WEBHOOK_TEMPLATES.get(template, GENERIC)
        self.notify_stages = notify_stages
        self.min_interval = min_interval
        self.headers = headers or {}
        self.timeout = timeout
        self._last_send: Optional[float] = None
        self._lock = threading.Lock()
        self._started: Optional[float] = None

    def _should_notify(self, stage: IndexingStage) -> bool:
        return self.notify_stages is None or stage in self.notify_stages

    def _post(self, payload: Payload) -> bool:
        body = json.dumps(payload).encode("utf-8")
        request = Request(
            self.url,
            data=body,
            headers={"Content-Type": "application/json", **self.headers},
            method="POST",
        )
        try:
            with urlopen(request, timeout=self.timeout) as response:
                return response.status < 400
        except OSError as e:
            logger.warning(f"Webhook post failed: {e}")
            return False

    def _post_in_background(self, payload: Payload) -> None:
        threading.Thread(target=self._post, args=(payload,), daemon=True).start()

    def _rate_limited(self) -> bool:
        with self._lock:
            now = time.monotonic()
            if self._last_send is not None and now - self._last_send < self.min_interval:
                return True
            self._last_send = now
            return False

    def start(self, run_label: str, total_documents: int = 0) -> None:
        self._started = time.monotonic()
        if self._should_notify(IndexingStage.SELECTING):
            self._post_in_background(self.template.start(run_label, total_documents))

    def notify(self, event: ProgressEvent) -> None:
        # Terminal stages are reported by finish()
        if event.stage.is_terminal or not self._should_notify(event.stage):
            return
        if self._rate_limited():
            return
        self._post_in_background(self.template.progress(event))

    def finish(self, success: bool, message: str = "") -> None:
        elapsed = time.monotonic() - self._started if self._started is not None else 0.0
        self._started = None
        if self._should_notify(IndexingStage.COMPLETE if success else IndexingStage.ERROR):
            self._post(self.template.finish(success, message, elapsed))
