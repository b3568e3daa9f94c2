from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from .errors import ResolutionError
from .hooks import HookRunner
from .lifecycle import ConfirmationStaging, LifecycleError
from .models import ApplyResult, Command, CreateCommand, ExecutionContext, PendingAction, UpdateCommand
from .registry import EntityRegistry
from .snapshots import SnapshotCache
from .validator import ActionValidator

logger = logging.getLogger(__name__)

APPLY_FALLBACK_MESSAGE = "Failed to apply AI suggestion."

ReferenceResolver = Callable[[ExecutionContext, str, dict[str, Any]], Awaitable["str | None"]]


class ActionApplier:
    def __init__(
        self,
        *,
        registry: EntityRegistry,
        validator: ActionValidator,
        resolve_reference: ReferenceResolver,
        staging: ConfirmationStaging,
        snapshots: SnapshotCache,
        hooks: HookRunner,
        notifier: Any,
    ) -> None:
        self.registry = registry
        self.validator = validator
        self.resolve_reference = resolve_reference
        self.staging = staging
        self.snapshots = snapshots
        self.hooks = hooks
        self.notifier = notifier

    async def apply(self, ctx: ExecutionContext) -> ApplyResult:
        try:
            action = self.staging.begin_apply()
        except LifecycleError as exc:
            return ApplyResult(status="noop", message=str(exc))

        payload = action.payload
        spec = self.registry.resolve(payload.entity)
        logger.info("applying action %s (%s/%s) for %s", action.action_id, payload.entity, payload.intent, ctx.user_id)
        try:
            store = ctx.stores[payload.entity]
            command = self.validator.validate(payload)
            record = await self._execute(ctx, command, store)
        except Exception as exc:
            message = str(exc) or APPLY_FALLBACK_MESSAGE
            logger.warning("action %s failed: %s", action.action_id, message)
            lifecycle = self.staging.fail(action, message)
            self._after(ctx, action, status="failed", lifecycle=lifecycle, error_message=message)
            self.notifier.error(message)
            return ApplyResult(
                status="failed",
                action_id=action.action_id,
                entity=payload.entity,
                intent=payload.intent,
                message=message,
                lifecycle=lifecycle,
            )

        await self._refresh(ctx, payload.entity, store)
        lifecycle = self.staging.complete(action)
        message = spec.success_message(payload.intent)
        self._after(ctx, action, status="applied", lifecycle=lifecycle, record=record)
        self.notifier.success(message)
        return ApplyResult(
            status="applied",
            action_id=action.action_id,
            entity=payload.entity,
            intent=payload.intent,
            record=record,
            message=message,
            lifecycle=lifecycle,
        )

    async def _execute(self, ctx: ExecutionContext, command: Command, store: Any) -> dict[str, Any]:
        if isinstance(command, CreateCommand):
            return await store.create({"user_profile_id": ctx.user_id, **command.fields})

        spec = self.registry.resolve(command.entity)
        record_id = await self.resolve_reference(ctx, command.entity, command.reference)
        if not record_id:
            raise ResolutionError(spec.not_found_message(command.intent))
        if isinstance(command, UpdateCommand):
            return await store.update(record_id, command.changes)
        return await store.delete(record_id)

    async def _refresh(self, ctx: ExecutionContext, entity: str, store: Any) -> None:
        try:
            records = await store.list_all(ctx.user_id)
        except Exception as exc:
            # The write already landed, so the apply stands; force a re-fetch on next use.
            logger.warning("refreshing %s snapshot failed after apply: %s", entity, exc)
            self.snapshots.invalidate(entity)
            return
        self.snapshots.put(entity, records)

    def _after(
        self,
        ctx: ExecutionContext,
        action: PendingAction,
        *,
        status: str,
        lifecycle: list[str],
        record: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None:
        outcome = {
            "status": status,
            "record": record,
            "error_message": error_message,
            "lifecycle": lifecycle,
        }
        try:
            self.hooks.run_after(ctx, action, outcome)
        except Exception:
            logger.exception("after-apply hook failed for action %s", action.action_id)
