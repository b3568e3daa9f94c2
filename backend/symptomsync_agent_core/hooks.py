from __future__ import annotations

from typing import Any, Callable

from .models import ExecutionContext, PendingAction


AfterHook = Callable[[ExecutionContext, PendingAction, dict[str, Any]], None]


class HookRunner:
    def __init__(self) -> None:
        self._after_hooks: list[AfterHook] = []

    def add_after(self, hook: AfterHook) -> None:
        self._after_hooks.append(hook)

    def run_after(self, ctx: ExecutionContext, action: PendingAction, outcome: dict[str, Any]) -> None:
        for hook in self._after_hooks:
            hook(ctx, action, outcome)
