from __future__ import annotations

from dataclasses import dataclass, field


_PAST_TENSE = {"create": "created", "update": "updated", "delete": "deleted"}


@dataclass(frozen=True)
class EntitySpec:
    name: str
    title: str
    noun: str
    label_field: str
    date_field: str
    date_label: str
    required_on_create: tuple[str, ...]
    optional_fields: tuple[str, ...] = ()
    datetime_fields: tuple[str, ...] = ()
    integer_fields: tuple[str, ...] = ()
    nullable_fields: tuple[str, ...] = ()
    defaults_to_now: tuple[str, ...] = ()
    required_messages: dict[str, str] = field(default_factory=dict)

    @property
    def fields(self) -> tuple[str, ...]:
        return self.required_on_create + self.optional_fields

    def success_message(self, intent: str) -> str:
        return f"{self.title} {_PAST_TENSE[intent]}."

    def not_found_message(self, intent: str) -> str:
        return f"Unable to find {self.noun} to {intent}."


class EntityRegistry:
    def __init__(self) -> None:
        self._specs: dict[str, EntitySpec] = {}

    def register(self, spec: EntitySpec) -> None:
        self._specs[spec.name] = spec

    def resolve(self, name: str) -> EntitySpec:
        spec = self._specs.get(name)
        if not spec:
            raise KeyError(f"Entity not found: {name}")
        return spec

    def list_names(self) -> list[str]:
        return sorted(self._specs.keys())


APPOINTMENT = EntitySpec(
    name="appointment",
    title="Appointment",
    noun="appointment",
    label_field="appointment_name",
    date_field="date",
    date_label="appointment date/time",
    required_on_create=("appointment_name", "date"),
    datetime_fields=("date",),
    required_messages={
        "appointment_name": "Appointment name is required to create.",
        "date": "Valid appointment date/time is required to create. Please provide a time.",
    },
)

MEDICATION = EntitySpec(
    name="medication",
    title="Medication reminder",
    noun="medication",
    label_field="medication_name",
    date_field="reminder_time",
    date_label="reminder time",
    required_on_create=("medication_name", "reminder_time"),
    optional_fields=("dosage", "recurrence"),
    datetime_fields=("reminder_time",),
    nullable_fields=("dosage", "recurrence"),
    required_messages={
        "medication_name": "Medication name is required to create.",
        "reminder_time": "Valid reminder time is required to create.",
    },
)

HEALTH_LOG = EntitySpec(
    name="health_log",
    title="Health log",
    noun="health log",
    label_field="symptom_type",
    date_field="start_date",
    date_label="start date",
    required_on_create=("symptom_type",),
    optional_fields=("severity", "mood", "medication_intake", "notes", "start_date"),
    datetime_fields=("start_date",),
    integer_fields=("severity",),
    defaults_to_now=("start_date",),
    required_messages={
        "symptom_type": "Symptom type is required to create a health log.",
    },
)


def build_entity_registry() -> EntityRegistry:
    registry = EntityRegistry()
    for spec in (APPOINTMENT, MEDICATION, HEALTH_LOG):
        registry.register(spec)
    return registry
