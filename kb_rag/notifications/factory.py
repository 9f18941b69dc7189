"""Build the notifier for an indexing run from the ``notifications`` config section"""

import logging
from typing import Any, Dict, List, Optional

from .composite import CompositeNotifier
from .console import ConsoleNotifier
from .interface import NotifierInterface
from .models import IndexingStage
from .null import NullNotifier
from .webhook import WebhookNotifier

logger = logging.getLogger(__name__)

Section = Dict[str, Any]


def _stages_from_names(names: List[str]) -> List[IndexingStage]:
    """Map stage names (any case) to stages, skipping unknown ones"""
    by_name = {stage.name: stage for stage in IndexingStage}
    stages = []
    for name in names:
        stage = by_name.get(str(name).upper())
        if stage is None:
            logger.warning(f"Ignoring unknown notification stage '{name}'")
            continue
        stages.append(stage)
    return stages


def _console_from(section: Section) -> Optional[ConsoleNotifier]:
    if not section.get("enabled", True):
        return None
    return ConsoleNotifier(
        show_progress_bar=section.get("show_progress_bar", True),
        verbose=section.get("verbose", False),
    )


def _webhook_from(section: Section) -> Optional[WebhookNotifier]:
    if not section.get("enabled", False):
        return None
    url = section.get("url")
    if not url:
        logger.warning("Webhook notifications are enabled but no url is set; skipping webhook")
        return None
    names = section.get("notify_stages")
    return WebhookNotifier(
        url=url,
        template=section.get("template", "generic"),
        notify_stages=_stages_from_names(names) if names is not None else None,
        min_interval=section.get("min_interval", 2.0),
        headers=section.get("headers") or {},
        timeout=section.get("timeout", 10),
    )


def create_notifier_from_config(
    notifications_config: Optional[Section],
    default_console: bool = True,
) -> NotifierInterface:
    """
    An empty section yields a ConsoleNotifier (or a NullNotifier when
    ``default_console`` is False). Otherwise each enabled channel is built
    and several channels are wrapped in a CompositeNotifier.
    """
    if not notifications_config:
        return ConsoleNotifier() if default_console else NullNotifier()

    built = [
        _console_from(notifications_config.get("console") or {}),
        _webhook_from(notifications_config.get("webhook") or {}),
    ]
    notifiers: List[NotifierInterface] = [n for n in built if n is not None]

    if not notifiers:
        return NullNotifier()
    if len(notifiers) == 1:
        return notifiers[0]
    return CompositeNotifier(notifiers)
