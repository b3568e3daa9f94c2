from __future__ import annotations

import pytest

from fakes import ScriptedChatModel
from symptomsync_tools.chat_session import RATE_LIMIT_MESSAGE, UNAVAILABLE_MESSAGE, friendly_error_message
from symptomsync_tools.gemini_client import ChatProviderError, RateLimitError


@pytest.mark.asyncio
async def test_headache_without_action_block_stages_fallback_health_log(make_session):
    model = ScriptedChatModel(["Sorry to hear that. Rest and drink water."])
    session = make_session(model)

    turn = await session.send_message("I have a headache, severity 7, today 3pm")

    assert turn.error is None
    assert turn.pending_action is not None
    assert turn.pending_action.source == "fallback"
    payload = turn.pending_action.payload
    assert (payload.entity, payload.intent) == ("health_log", "create")
    assert payload.data["symptom_type"] == "I have a headache"
    assert payload.data["severity"] == 7
    assert payload.data["start_date"] == "2025-01-01T15:00:00.000Z"


@pytest.mark.asyncio
async def test_reply_is_recorded_even_when_an_action_is_staged(make_session):
    session = make_session(ScriptedChatModel(["Logged it for review."]))

    await session.send_message("log cough, 3")

    assert [(turn.role, turn.text) for turn in session.history] == [
        ("user", "log cough, 3"),
        ("model", "Logged it for review."),
    ]
    assert session.pending is not None


@pytest.mark.asyncio
async def test_model_receives_prior_history_and_user_data(make_session, stores):
    stores["appointment"].records = [
        {"id": "a1", "appointment_name": "Dentist", "date": "2025-01-05T15:00:00.000Z"},
    ]
    model = ScriptedChatModel(["Hello!", "Your dentist visit is on Jan 5."])
    session = make_session(model)

    await session.send_message("hi")
    await session.send_message("when is my dentist visit?")

    second = model.calls[1]
    assert [(turn.role, turn.text) for turn in second["history"]] == [("user", "hi"), ("model", "Hello!")]
    assert second["message"] == "when is my dentist visit?"
    assert "- Dentist on 2025-01-05 15:00" in second["system_instruction"]
    assert "2025-01-01T00:00:00.000Z" in second["system_instruction"]
    assert second["rotation"] is session.rotation
    assert [item["id"] for item in session.snapshots.get("appointment")] == ["a1"]


@pytest.mark.asyncio
async def test_out_of_range_date_in_user_text_still_records_the_reply(make_session):
    session = make_session(ScriptedChatModel(["Noted, rest up."]))

    turn = await session.send_message("log headache, 9999-12-31T23:00:00-05:00")

    assert turn.error is None
    assert turn.pending_action.payload.data["start_date"] == "9999-12-31T23:00:00-05:00"
    assert [(item.role, item.text) for item in session.history] == [
        ("user", "log headache, 9999-12-31T23:00:00-05:00"),
        ("model", "Noted, rest up."),
    ]


@pytest.mark.asyncio
async def test_rate_limit_is_mapped_to_retry_message(make_session):
    model = ScriptedChatModel(error=RateLimitError("[429] gemini-2.5-flash: Resource has been exhausted"))
    session = make_session(model)

    turn = await session.send_message("hello")

    assert turn.error == RATE_LIMIT_MESSAGE
    assert turn.reply is None
    assert [(item.role, item.text) for item in session.history] == [("user", "hello")]
    assert session.notifier.drain() == [{"level": "error", "message": RATE_LIMIT_MESSAGE}]


@pytest.mark.asyncio
async def test_snapshot_failure_surfaces_its_message(make_session, stores):
    stores["medication"].fail_on = {"list_all"}
    session = make_session()

    turn = await session.send_message("hello")

    assert turn.error == "database is unavailable"


@pytest.mark.asyncio
async def test_blank_message_is_ignored(make_session):
    model = ScriptedChatModel()
    session = make_session(model)

    turn = await session.send_message("   ")

    assert turn.reply is None and turn.error is None
    assert model.calls == []
    assert session.history == []


@pytest.mark.asyncio
async def test_clearing_history_keeps_the_pending_action(make_session):
    session = make_session(ScriptedChatModel(["ok"]))
    await session.send_message("log nausea, 4")

    session.clear_history()

    assert session.history == []
    assert session.pending is not None


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (None, UNAVAILABLE_MESSAGE),
        (RuntimeError(""), UNAVAILABLE_MESSAGE),
        (ChatProviderError("Missing GOOGLE_AI_API_KEY in environment variables"), "Missing GOOGLE_AI_API_KEY in environment variables"),
        (RuntimeError("HTTP 429 Too Many Requests"), RATE_LIMIT_MESSAGE),
    ],
)
def test_friendly_error_message(error, expected):
    assert friendly_error_message(error) == expected
