from .applier import APPLY_FALLBACK_MESSAGE, ActionApplier
from .errors import ActionError, ActionValidationError, AmbiguousReferenceError, ResolutionError
from .hooks import HookRunner
from .lifecycle import ConfirmationStaging, LifecycleError
from .models import (
    ENTITY_KINDS,
    ActionPayload,
    ApplyResult,
    ChatMessage,
    CreateCommand,
    DeleteCommand,
    ExecutionContext,
    PendingAction,
    UpdateCommand,
)
from .notifications import CollectingNotifier, LoggingNotifier
from .registry import EntityRegistry, EntitySpec, build_entity_registry
from .snapshots import SnapshotCache
from .validator import ActionValidator

__all__ = [
    "APPLY_FALLBACK_MESSAGE",
    "ENTITY_KINDS",
    "ActionApplier",
    "ActionError",
    "ActionPayload",
    "ActionValidationError",
    "ActionValidator",
    "AmbiguousReferenceError",
    "ApplyResult",
    "ChatMessage",
    "CollectingNotifier",
    "ConfirmationStaging",
    "CreateCommand",
    "DeleteCommand",
    "EntityRegistry",
    "EntitySpec",
    "ExecutionContext",
    "HookRunner",
    "LifecycleError",
    "LoggingNotifier",
    "PendingAction",
    "ResolutionError",
    "SnapshotCache",
    "UpdateCommand",
    "build_entity_registry",
]
