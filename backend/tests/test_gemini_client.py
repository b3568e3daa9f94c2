from __future__ import annotations

import json

import httpx
import pytest

from symptomsync_agent_core import ChatMessage
from symptomsync_tools.chat_session import RATE_LIMIT_MESSAGE, friendly_error_message
from symptomsync_tools.gemini_client import ChatProviderError, GeminiChatClient, ModelRotation, RateLimitError

MODEL_LIST = {
    "models": [
        {"name": "models/gemini-a", "supportedGenerationMethods": ["generateContent"]},
        {"name": "models/gemini-b", "supportedGenerationMethods": ["generateContent", "countTokens"]},
        {"name": "models/gemini-embedding-001", "supportedGenerationMethods": ["embedContent"]},
        {"name": "models/gemini-1.5-pro", "supportedGenerationMethods": ["generateContent"]},
        {"name": "models/gemini-c", "supportedGenerationMethods": ["generateContent"]},
        {"name": "models/gemini-tts", "supportedGenerationMethods": ["bidiGenerateContent"]},
        {"name": "models/text-bison", "supportedGenerationMethods": ["generateContent"]},
        {"name": "models/gemini-a", "supportedGenerationMethods": ["generateContent"]},
    ]
}


def _answer(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def _model_from(request: httpx.Request) -> str:
    return request.url.path.rsplit("/", 1)[-1].split(":", 1)[0]


def _client(handler, **kwargs) -> GeminiChatClient:
    return GeminiChatClient(api_key="test-key", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_model_discovery_keeps_text_generation_flash_models():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["key"] == "test-key"
        return httpx.Response(200, json=MODEL_LIST)

    client = _client(handler)
    async with client._client() as http:
        assert await client.list_models(http) == ["gemini-a", "gemini-b", "gemini-c"]


@pytest.mark.asyncio
async def test_rotation_advances_per_session_only():
    used: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=MODEL_LIST)
        model = _model_from(request)
        used.append(model)
        return httpx.Response(200, json=_answer(f"from {model}"))

    client = _client(handler)
    first_session, second_session = ModelRotation(), ModelRotation()

    assert await client.reply([], "hi", system_instruction="sys", rotation=first_session) == "from gemini-a"
    assert await client.reply([], "hi", system_instruction="sys", rotation=first_session) == "from gemini-b"
    assert await client.reply([], "hi", system_instruction="sys", rotation=second_session) == "from gemini-a"

    assert first_session.cursor == 2
    assert second_session.cursor == 1
    assert used == ["gemini-a", "gemini-b", "gemini-a"]


@pytest.mark.asyncio
async def test_failed_model_falls_through_to_next():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=MODEL_LIST)
        if _model_from(request) == "gemini-a":
            return httpx.Response(500, json={"error": {"message": "backend overloaded"}})
        return httpx.Response(200, json=_answer("second try"))

    rotation = ModelRotation()
    reply = await _client(handler).reply([], "hi", system_instruction="sys", rotation=rotation)

    assert reply == "second try"
    assert rotation.cursor == 2


@pytest.mark.asyncio
async def test_rate_limit_on_every_model_raises_recognisable_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=MODEL_LIST)
        return httpx.Response(429, json={"error": {"message": "Resource has been exhausted"}})

    rotation = ModelRotation()
    with pytest.raises(RateLimitError) as excinfo:
        await _client(handler).reply([], "hi", system_instruction="sys", rotation=rotation)

    assert "429" in str(excinfo.value)
    assert friendly_error_message(excinfo.value) == RATE_LIMIT_MESSAGE
    assert rotation.cursor == 0


@pytest.mark.asyncio
async def test_discovery_failure_uses_fallback_models_and_sends_history():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(403, json={"error": {"message": "listing not allowed"}})
        bodies.append({"model": _model_from(request), **json.loads(request.content)})
        return httpx.Response(200, json=_answer("ok"))

    client = _client(handler, fallback_models=["gemini-x", "gemini-y"])
    history = [
        ChatMessage(role="model", text="Welcome back!"),
        ChatMessage(role="user", text="I slept badly"),
        ChatMessage(role="model", text="Sorry to hear that."),
    ]

    await client.reply(history, "what helps?", system_instruction="be kind", rotation=ModelRotation())

    body = bodies[0]
    assert body["model"] == "gemini-x"
    assert body["systemInstruction"] == {"parts": [{"text": "be kind"}]}
    assert [item["role"] for item in body["contents"]] == ["user", "model", "user"]
    assert body["contents"][-1]["parts"] == [{"text": "what helps?"}]
    assert body["generationConfig"]["maxOutputTokens"] == 8192


@pytest.mark.asyncio
async def test_missing_api_key_is_reported():
    client = GeminiChatClient(api_key=None, transport=httpx.MockTransport(lambda request: httpx.Response(200)))

    with pytest.raises(ChatProviderError) as excinfo:
        await client.reply([], "hi", system_instruction="sys", rotation=ModelRotation())

    assert "GOOGLE_AI_API_KEY" in str(excinfo.value)


@pytest.mark.asyncio
async def test_empty_candidate_text_counts_as_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"models": []})
        return httpx.Response(200, json={"candidates": []})

    client = _client(handler, fallback_models=["gemini-x"])
    with pytest.raises(ChatProviderError) as excinfo:
        await client.reply([], "hi", system_instruction="sys", rotation=ModelRotation())

    assert str(excinfo.value) == "Failed to get text response from the AI."
