from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class LoggingNotifier:
    def success(self, message: str) -> None:
        logger.info("notify success: %s", message)

    def error(self, message: str) -> None:
        logger.warning("notify error: %s", message)


class CollectingNotifier(LoggingNotifier):
    """Keeps notifications until the HTTP layer drains them into a response."""

    def __init__(self) -> None:
        self._items: list[dict[str, Any]] = []

    def success(self, message: str) -> None:
        super().success(message)
        self._items.append({"level": "success", "message": message})

    def error(self, message: str) -> None:
        super().error(message)
        self._items.append({"level": "error", "message": message})

    def drain(self) -> list[dict[str, Any]]:
        items, self._items = self._items, []
        return items
