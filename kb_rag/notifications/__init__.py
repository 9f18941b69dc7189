"""
Progress notifications for kb-index runs.

The indexer reports each step (page selection, chunking, embedding batches,
chunk replacement) as a ProgressEvent. Where those events go is decided by
the ``notifications`` section of .kb-rag.yml:

    notifier = create_notifier_from_config(config.notifications)
    notifier.start("Indexing Support KB", total_documents=12)
    notifier.notify(ProgressEvent(IndexingStage.CHUNKING, "Page 42: 7 chunks", page_id=42))
    notifier.finish(success=True, message="12 indexed")
"""

from .composite import CompositeNotifier
from .console import ConsoleNotifier
from .factory import create_notifier_from_config
from .interface import NotifierInterface
from .models import STAGE_INFO, IndexingStage, ProgressEvent, StageInfo
from .null import NullNotifier
from .webhook import WebhookNotifier

__all__ = [
    "CompositeNotifier",
    "ConsoleNotifier",
    "IndexingStage",
    "NotifierInterface",
    "NullNotifier",
    "ProgressEvent",
    "STAGE_INFO",
    "StageInfo",
    "WebhookNotifier",
    "create_notifier_from_config",
]
