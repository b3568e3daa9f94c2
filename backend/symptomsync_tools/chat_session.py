from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from symptomsync_agent_core.applier import ActionApplier
from symptomsync_agent_core.hooks import HookRunner
from symptomsync_agent_core.lifecycle import ConfirmationStaging
from symptomsync_agent_core.models import ApplyResult, ChatMessage, ExecutionContext, PendingAction
from symptomsync_agent_core.notifications import CollectingNotifier
from symptomsync_agent_core.registry import EntityRegistry
from symptomsync_agent_core.snapshots import SnapshotCache
from symptomsync_agent_core.validator import ActionValidator

from .action_parser import parse_action
from .datetime_resolver import DateTimeResolver
from .entity_resolver import EntityResolver
from .fallback_deriver import derive_health_log_action
from .gemini_client import ModelRotation
from .prompts import build_system_instruction, build_user_context

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "AI hit a rate limit. Please retry in a few seconds or check quota."
UNAVAILABLE_MESSAGE = "AI is unavailable. Please try again soon."


def friendly_error_message(exc: BaseException | None) -> str:
    if exc is None:
        return UNAVAILABLE_MESSAGE
    message = str(exc)
    if "429" in message:
        return RATE_LIMIT_MESSAGE
    return message or UNAVAILABLE_MESSAGE


@dataclass
class ChatTurnResult:
    reply: str | None = None
    pending_action: PendingAction | None = None
    error: str | None = None

    def as_envelope(self) -> dict[str, Any]:
        return {
            "reply": self.reply,
            "pending_action": self.pending_action.as_dict() if self.pending_action else None,
            "error": self.error,
        }


class ChatSession:
    """One user's conversation: history, record snapshots, the pending action and model rotation."""

    def __init__(
        self,
        *,
        ctx: ExecutionContext,
        chat_model: Any,
        registry: EntityRegistry,
        datetimes: DateTimeResolver,
        hooks: HookRunner | None = None,
        conversation: Any = None,
        notifier: CollectingNotifier | None = None,
    ) -> None:
        self.ctx = ctx
        self.chat_model = chat_model
        self.registry = registry
        self.datetimes = datetimes
        self.conversation = conversation
        self.notifier = notifier or CollectingNotifier()
        self.snapshots = SnapshotCache()
        self.staging = ConfirmationStaging()
        self.rotation = ModelRotation()
        self.entity_resolver = EntityResolver(registry, self.snapshots, datetimes)
        self.applier = ActionApplier(
            registry=registry,
            validator=ActionValidator(registry, datetimes),
            resolve_reference=self.entity_resolver.resolve,
            staging=self.staging,
            snapshots=self.snapshots,
            hooks=hooks or HookRunner(),
            notifier=self.notifier,
        )
        self.history: list[ChatMessage] = []
        if conversation is not None:
            self.history = [
                ChatMessage(role=item["role"], text=item["text"]) for item in conversation.history(ctx.user_id)
            ]

    @property
    def pending(self) -> PendingAction | None:
        return self.staging.pending

    def _append(self, role: str, text: str) -> None:
        self.history.append(ChatMessage(role=role, text=text))
        if self.conversation is not None:
            self.conversation.append(user_id=self.ctx.user_id, role=role, text=text)

    async def refresh_snapshots(self) -> dict[str, list[dict[str, Any]]]:
        entities = self.registry.list_names()
        results = await asyncio.gather(
            *(self.ctx.stores[entity].list_all(self.ctx.user_id) for entity in entities)
        )
        for entity, records in zip(entities, results):
            self.snapshots.put(entity, records)
        return self.snapshots.as_dict()

    async def send_message(self, text: str) -> ChatTurnResult:
        message = (text or "").strip()
        if not message:
            return ChatTurnResult()

        prior = list(self.history)
        self._append("user", message)
        try:
            snapshots = await self.refresh_snapshots()
            instruction = build_system_instruction(
                self.datetimes.now_instant(),
                build_user_context(snapshots, self.datetimes),
            )
            reply = await self.chat_model.reply(
                prior,
                message,
                system_instruction=instruction,
                rotation=self.rotation,
            )
        except Exception as exc:
            friendly = friendly_error_message(exc)
            logger.warning("chat turn failed for %s: %s", self.ctx.user_id, exc)
            self.notifier.error(friendly)
            return ChatTurnResult(error=friendly)

        payload = parse_action(reply)
        source = "assistant"
        if payload is None:
            payload = derive_health_log_action(message, self.datetimes)
            source = "fallback"
        pending = self.staging.stage(payload, source=source) if payload else None
        self._append("model", reply)
        return ChatTurnResult(reply=reply, pending_action=pending)

    async def apply_pending(self) -> ApplyResult:
        return await self.applier.apply(self.ctx)

    def dismiss_pending(self) -> PendingAction | None:
        return self.staging.dismiss()

    def clear_history(self) -> None:
        self.history = []
        if self.conversation is not None:
            self.conversation.clear(self.ctx.user_id)
