from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class SnapshotCache:
    """Most recent full record list per entity kind, used as the resolution search space."""

    def __init__(self) -> None:
        self._snapshots: dict[str, list[dict[str, Any]]] = {}

    def get(self, entity: str) -> list[dict[str, Any]]:
        return list(self._snapshots.get(entity) or [])

    def put(self, entity: str, records: list[dict[str, Any]]) -> None:
        self._snapshots[entity] = list(records)

    def invalidate(self, entity: str) -> None:
        if self._snapshots.pop(entity, None) is not None:
            logger.info("invalidated %s snapshot", entity)

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {entity: list(records) for entity, records in self._snapshots.items()}
