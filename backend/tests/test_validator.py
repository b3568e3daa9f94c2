from __future__ import annotations

import pytest

from symptomsync_agent_core import (
    ActionPayload,
    ActionValidationError,
    ActionValidator,
    CreateCommand,
    DeleteCommand,
    UpdateCommand,
)

# Each case drops something the required-field matrix demands for its entity/intent.
MISSING_REQUIRED = [
    ("appointment", "create", {"date": "2025-01-05T15:00:00Z"}, "Appointment name is required to create."),
    (
        "appointment",
        "create",
        {"appointment_name": "Dentist"},
        "Valid appointment date/time is required to create. Please provide a time.",
    ),
    (
        "appointment",
        "create",
        {"appointment_name": "Dentist", "date": "tomorrow"},
        "Valid appointment date/time is required to create. Please provide a time.",
    ),
    (
        "appointment",
        "create",
        {"appointment_name": "Dentist", "date": "Monday"},
        "Valid appointment date/time is required to create. Please provide a time.",
    ),
    (
        "medication",
        "create",
        {"medication_name": "Aspirin", "reminder_time": "March"},
        "Valid reminder time is required to create.",
    ),
    ("appointment", "update", {"date_hint": "soon"}, "Unable to find appointment to update."),
    ("appointment", "update", {"id": "a1"}, "No valid fields to update."),
    ("appointment", "delete", {}, "Unable to find appointment to delete."),
    ("medication", "create", {"reminder_time": "8am"}, "Medication name is required to create."),
    ("medication", "create", {"medication_name": "Aspirin"}, "Valid reminder time is required to create."),
    ("medication", "update", {"id": "m1"}, "No valid fields to update."),
    ("medication", "delete", {"dosage": "5mg"}, "Unable to find medication to delete."),
    ("health_log", "create", {"severity": 4}, "Symptom type is required to create a health log."),
    ("health_log", "create", {"symptom_type": "   "}, "Symptom type is required to create a health log."),
    ("health_log", "update", {"id": "h1"}, "No valid fields to update."),
    ("health_log", "delete", {"mood": "tired"}, "Unable to find health log to delete."),
]


@pytest.fixture
def validator(registry, datetimes):
    return ActionValidator(registry, datetimes)


@pytest.mark.parametrize(("entity", "intent", "data", "message"), MISSING_REQUIRED)
def test_missing_required_fields_are_rejected(validator, entity, intent, data, message):
    with pytest.raises(ActionValidationError) as excinfo:
        validator.validate(ActionPayload(entity=entity, intent=intent, data=data))
    assert str(excinfo.value) == message


@pytest.mark.asyncio
@pytest.mark.parametrize(("entity", "intent", "data", "message"), MISSING_REQUIRED)
async def test_rejected_actions_never_reach_a_writer(make_session, stores, entity, intent, data, message):
    session = make_session()
    session.staging.stage(ActionPayload(entity=entity, intent=intent, data=data))

    result = await session.apply_pending()

    assert result.status == "failed"
    assert result.message == message
    assert all(store.writes() == [] for store in stores.values())
    assert session.pending is not None
    assert session.pending.state == "staged"


def test_create_resolves_dates_and_keeps_optional_fields(validator):
    command = validator.validate(
        ActionPayload(
            entity="medication",
            intent="create",
            data={
                "medication_name": "Aspirin",
                "reminder_time": "tomorrow 8:30am",
                "dosage": "81mg",
                "recurrence": None,
                "notes": "ignored",
            },
        )
    )

    assert command == CreateCommand(
        entity="medication",
        fields={
            "medication_name": "Aspirin",
            "reminder_time": "2025-01-02T08:30:00.000Z",
            "dosage": "81mg",
            "recurrence": None,
        },
    )


def test_health_log_start_date_defaults_to_now(validator):
    command = validator.validate(
        ActionPayload(entity="health_log", intent="create", data={"symptom_type": "Cough", "severity": "3"})
    )

    assert command.fields == {
        "symptom_type": "Cough",
        "severity": 3,
        "start_date": "2025-01-01T00:00:00.000Z",
    }


@pytest.mark.parametrize("severity", ["high", 11, -1, 6.5, True])
def test_invalid_severity_is_rejected(validator, severity):
    with pytest.raises(ActionValidationError):
        validator.validate(
            ActionPayload(entity="health_log", intent="create", data={"symptom_type": "Cough", "severity": severity})
        )


def test_update_splits_reference_from_changes(validator):
    command = validator.validate(
        ActionPayload(
            entity="appointment",
            intent="update",
            data={"appointment_name": "Dentist", "date": "tomorrow, 4pm"},
        )
    )

    assert isinstance(command, UpdateCommand)
    assert command.reference == {"appointment_name": "Dentist", "date": "2025-01-02T16:00:00.000Z"}
    assert command.changes == {"appointment_name": "Dentist", "date": "2025-01-02T16:00:00.000Z"}


def test_update_with_unresolvable_date_is_rejected(validator):
    with pytest.raises(ActionValidationError) as excinfo:
        validator.validate(
            ActionPayload(entity="appointment", intent="update", data={"id": "a1", "date": "sometime next week"})
        )
    assert "appointment date/time" in str(excinfo.value)


def test_medication_update_can_clear_dosage(validator):
    command = validator.validate(
        ActionPayload(entity="medication", intent="update", data={"id": "m1", "dosage": None})
    )

    assert command == UpdateCommand(entity="medication", reference={"id": "m1"}, changes={"dosage": None})


def test_delete_by_label(validator):
    command = validator.validate(
        ActionPayload(entity="health_log", intent="delete", data={"symptom_type": "Migraine"})
    )

    assert command == DeleteCommand(entity="health_log", reference={"symptom_type": "Migraine"})
