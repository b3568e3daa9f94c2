from __future__ import annotations

from typing import Any

from symptomsync_tools.datetime_resolver import DateTimeResolver

from .errors import ActionValidationError
from .models import ActionPayload, Command, CreateCommand, DeleteCommand, UpdateCommand
from .registry import EntityRegistry, EntitySpec


_SKIP = object()


def coerce_severity(value: Any) -> int:
    if isinstance(value, bool):
        raise ActionValidationError("Severity must be a whole number between 0 and 10.")
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ActionValidationError("Severity must be a whole number between 0 and 10.") from None
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        raise ActionValidationError("Severity must be a whole number between 0 and 10.")
    if not number.is_integer() or not 0 <= number <= 10:
        raise ActionValidationError("Severity must be a whole number between 0 and 10.")
    return int(number)


class ActionValidator:
    """Turns a loose action payload into a typed command, or rejects it.

    Nothing here touches persistence: a payload that fails the required-field
    matrix for its entity and intent is rejected before any lookup or write.
    """

    def __init__(self, registry: EntityRegistry, datetimes: DateTimeResolver) -> None:
        self.registry = registry
        self.datetimes = datetimes

    def validate(self, payload: ActionPayload) -> Command:
        spec = self.registry.resolve(payload.entity)
        data = payload.data
        if payload.intent == "create":
            return CreateCommand(entity=spec.name, fields=self._create_fields(spec, data))

        reference = self._reference(spec, data, payload.intent)
        if payload.intent == "update":
            changes = self._changes(spec, data)
            if not changes:
                raise ActionValidationError("No valid fields to update.")
            return UpdateCommand(entity=spec.name, reference=reference, changes=changes)
        return DeleteCommand(entity=spec.name, reference=reference)

    def _coerce(self, spec: EntitySpec, field: str, value: Any) -> Any:
        if field in spec.datetime_fields:
            resolved = self.datetimes.resolve(value) if isinstance(value, str) else None
            return resolved if resolved else _SKIP
        if field in spec.integer_fields:
            if value is None:
                return _SKIP
            return coerce_severity(value)
        if value is None and field in spec.nullable_fields:
            return None
        if isinstance(value, str):
            return value.strip()
        return _SKIP

    def _create_fields(self, spec: EntitySpec, data: dict[str, Any]) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for name in spec.fields:
            if name not in data:
                continue
            value = self._coerce(spec, name, data[name])
            if value is not _SKIP:
                fields[name] = value
        for name in spec.required_on_create:
            if not fields.get(name):
                raise ActionValidationError(spec.required_messages[name])
        for name in spec.defaults_to_now:
            fields.setdefault(name, self.datetimes.now_instant())
        return fields

    def _changes(self, spec: EntitySpec, data: dict[str, Any]) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        for name in spec.fields:
            if name not in data:
                continue
            value = self._coerce(spec, name, data[name])
            if value is _SKIP:
                if name in spec.datetime_fields and data[name] not in (None, ""):
                    raise ActionValidationError(
                        f"Valid {spec.date_label} is required to update. Please provide a time."
                    )
                continue
            if name in spec.required_on_create and not value:
                continue
            changes[name] = value
        return changes

    def _reference(self, spec: EntitySpec, data: dict[str, Any], intent: str) -> dict[str, Any]:
        reference: dict[str, Any] = {}
        record_id = data.get("id")
        if isinstance(record_id, str) and record_id.strip():
            reference["id"] = record_id.strip()
        label = data.get(spec.label_field)
        if isinstance(label, str) and label.strip():
            reference[spec.label_field] = label.strip()
        when = data.get(spec.date_field)
        resolved = self.datetimes.resolve(when) if isinstance(when, str) else None
        if resolved:
            reference[spec.date_field] = resolved
        if not reference:
            raise ActionValidationError(spec.not_found_message(intent))
        return reference
