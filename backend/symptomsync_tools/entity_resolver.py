from __future__ import annotations

import logging
from typing import Any

from symptomsync_agent_core.errors import AmbiguousReferenceError
from symptomsync_agent_core.models import ExecutionContext
from symptomsync_agent_core.registry import EntityRegistry
from symptomsync_agent_core.snapshots import SnapshotCache

from .datetime_resolver import DateTimeResolver

logger = logging.getLogger(__name__)


class EntityResolver:
    """Maps a loose reference (id, label, or date) to one stored record id.

    A record matches when its label equals the reference label (ignoring
    case) or its date equals the reference date. One record matching every
    given criterion wins; otherwise the match must be unique, and more than
    one candidate raises ``AmbiguousReferenceError`` rather than guessing.
    """

    def __init__(self, registry: EntityRegistry, snapshots: SnapshotCache, datetimes: DateTimeResolver) -> None:
        self.registry = registry
        self.snapshots = snapshots
        self.datetimes = datetimes

    async def records(self, ctx: ExecutionContext, entity: str) -> list[dict[str, Any]]:
        cached = self.snapshots.get(entity)
        if cached:
            return cached
        fetched = await ctx.stores[entity].list_all(ctx.user_id)
        self.snapshots.put(entity, fetched)
        return list(fetched)

    async def resolve(self, ctx: ExecutionContext, entity: str, reference: dict[str, Any]) -> str | None:
        record_id = reference.get("id")
        if isinstance(record_id, str) and record_id:
            return record_id

        spec = self.registry.resolve(entity)
        label = reference.get(spec.label_field)
        label = label.strip().lower() if isinstance(label, str) and label.strip() else None
        when = self.datetimes.resolve(reference.get(spec.date_field))
        if not label and not when:
            return None

        matches: list[dict[str, Any]] = []
        exact: list[dict[str, Any]] = []
        for record in await self.records(ctx, entity):
            record_label = record.get(spec.label_field)
            same_label = bool(label) and isinstance(record_label, str) and record_label.lower() == label
            same_when = bool(when) and self.datetimes.resolve(record.get(spec.date_field)) == when
            if not (same_label or same_when):
                continue
            matches.append(record)
            if (same_label or not label) and (same_when or not when):
                exact.append(record)

        if len(exact) == 1:
            return exact[0]["id"]
        if len(matches) == 1:
            return matches[0]["id"]
        if not matches:
            return None
        logger.info("ambiguous %s reference for %s: %d candidates", entity, ctx.user_id, len(matches))
        raise AmbiguousReferenceError(spec.noun, spec.label_field, matches)
