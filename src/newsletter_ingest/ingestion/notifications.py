"""Fire-and-forget notification contract for newly ingested articles."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Receives one call per ingested issue."""

    def notify_new_articles(self, *, created_count: int, newsletter_name: str) -> None:
        raise NotImplementedError


class LoggingNotifier:
    """Default notifier that only records the event in the log."""

    def notify_new_articles(self, *, created_count: int, newsletter_name: str) -> None:
        if created_count <= 0:
            return
        logger.info("%d new articles ingested from %s", created_count, newsletter_name)
