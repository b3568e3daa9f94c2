from __future__ import annotations

from typing import Any


class ActionError(Exception):
    pass


class ActionValidationError(ActionError):
    pass


class ResolutionError(ActionError):
    pass


class AmbiguousReferenceError(ResolutionError):
    def __init__(self, noun: str, label_field: str | None, candidates: list[dict[str, Any]]) -> None:
        self.candidates = candidates
        names = []
        for record in candidates:
            label = record.get(label_field) if label_field else None
            names.append(str(label or record.get("id")))
        super().__init__(
            f"More than one {noun} matches ({', '.join(names)}). Please say which one you mean."
        )
