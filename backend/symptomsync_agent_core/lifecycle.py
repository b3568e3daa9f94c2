from __future__ import annotations

import logging

from .models import ActionPayload, PendingAction

logger = logging.getLogger(__name__)


class LifecycleError(Exception):
    pass


class ConfirmationStaging:
    """Single-slot holder for the action awaiting user confirmation.

    A staged action is only ever written through ``begin_apply``; a failed apply
    returns the same action to ``staged`` so the user can retry or dismiss it.
    """

    _TRANSITIONS = {
        "staged": {"applying", "discarded"},
        "applying": {"applied", "failed"},
        "failed": {"staged"},
        "applied": set(),
        "discarded": set(),
    }

    def __init__(self) -> None:
        self._pending: PendingAction | None = None

    @property
    def pending(self) -> PendingAction | None:
        return self._pending

    def _transition(self, action: PendingAction, next_state: str) -> list[str]:
        allowed_next = self._TRANSITIONS.get(action.state, set())
        if next_state not in allowed_next:
            raise LifecycleError(f"Invalid transition: {action.state} -> {next_state}")
        action.state = next_state
        action.lifecycle.append(next_state)
        return list(action.lifecycle)

    def stage(self, payload: ActionPayload, *, source: str = "assistant") -> PendingAction:
        previous = self._pending
        if previous is not None:
            if previous.state == "staged":
                self._transition(previous, "discarded")
            logger.info(
                "replacing pending action %s (%s/%s) with a new %s/%s action",
                previous.action_id,
                previous.payload.entity,
                previous.payload.intent,
                payload.entity,
                payload.intent,
            )
        self._pending = PendingAction(payload=payload, source=source)
        return self._pending

    def dismiss(self) -> PendingAction | None:
        action = self._pending
        if action is None:
            return None
        self._transition(action, "discarded")
        self._pending = None
        logger.info("dismissed pending action %s", action.action_id)
        return action

    def begin_apply(self) -> PendingAction:
        action = self._pending
        if action is None:
            raise LifecycleError("No pending action to apply.")
        if action.state == "applying":
            raise LifecycleError("This action is already being applied.")
        self._transition(action, "applying")
        return action

    def complete(self, action: PendingAction) -> list[str]:
        lifecycle = self._transition(action, "applied")
        action.last_error = None
        if self._pending is action:
            self._pending = None
        return lifecycle

    def fail(self, action: PendingAction, message: str) -> list[str]:
        self._transition(action, "failed")
        action.last_error = message
        lifecycle = self._transition(action, "staged")
        if self._pending is not action:
            logger.info("failed action %s was replaced while applying", action.action_id)
        return lifecycle
