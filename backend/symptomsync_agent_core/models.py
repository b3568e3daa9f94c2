from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict

from records.time_utils import to_iso, utc_now


ENTITY_KINDS = ("appointment", "medication", "health_log")

EntityKind = Literal["appointment", "medication", "health_log"]
Intent = Literal["create", "update", "delete"]


class ActionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    entity: EntityKind
    intent: Intent
    data: dict[str, Any]


@dataclass
class ChatMessage:
    role: Literal["user", "model"]
    text: str


@dataclass
class ExecutionContext:
    user_id: str
    session_key: str
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    stores: dict[str, Any] = field(default_factory=dict)


@dataclass
class PendingAction:
    payload: ActionPayload
    source: Literal["assistant", "fallback"] = "assistant"
    action_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: str = "staged"
    lifecycle: list[str] = field(default_factory=lambda: ["staged"])
    staged_at: str = field(default_factory=lambda: to_iso(utc_now()))
    last_error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "entity": self.payload.entity,
            "intent": self.payload.intent,
            "data": dict(self.payload.data),
            "source": self.source,
            "state": self.state,
            "lifecycle": list(self.lifecycle),
            "staged_at": self.staged_at,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class CreateCommand:
    intent: ClassVar[str] = "create"
    entity: str
    fields: dict[str, Any]


@dataclass(frozen=True)
class UpdateCommand:
    intent: ClassVar[str] = "update"
    entity: str
    reference: dict[str, Any]
    changes: dict[str, Any]


@dataclass(frozen=True)
class DeleteCommand:
    intent: ClassVar[str] = "delete"
    entity: str
    reference: dict[str, Any]


Command = CreateCommand | UpdateCommand | DeleteCommand


@dataclass
class ApplyResult:
    status: Literal["applied", "failed", "noop"]
    action_id: str | None = None
    entity: str | None = None
    intent: str | None = None
    record: dict[str, Any] | None = None
    message: str = ""
    lifecycle: list[str] = field(default_factory=list)

    def as_envelope(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "action_id": self.action_id,
            "entity": self.entity,
            "intent": self.intent,
            "record": self.record,
            "message": self.message,
            "lifecycle": self.lifecycle,
        }
