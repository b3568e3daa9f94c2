from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from symptomsync_agent_core.models import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODELS = [
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-2.0-flash-001",
    "gemini-2.0-flash-lite",
    "gemini-2.0-flash-lite-001",
]
_GENERATION_CONFIG = {
    "temperature": 1,
    "topP": 0.95,
    "topK": 64,
    "maxOutputTokens": 8192,
}
_SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class ChatProviderError(RuntimeError):
    pass


class RateLimitError(ChatProviderError):
    pass


@dataclass
class ModelRotation:
    """Round-robin cursor over model names, owned by one chat session."""

    cursor: int = 0

    def ordered(self, models: list[str]) -> list[str]:
        if not models:
            return []
        start = self.cursor % len(models)
        return models[start:] + models[:start]

    def advance_past(self, models: list[str], model: str) -> None:
        self.cursor = (models.index(model) + 1) % len(models)


def _provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


def _raise_for_provider(response: httpx.Response, model: str) -> None:
    if response.status_code == 429:
        raise RateLimitError(f"[429] {model}: {_provider_error_message(response)}")
    if response.status_code >= 400:
        raise ChatProviderError(f"[{response.status_code}] {model}: {_provider_error_message(response)}")


def _coerce_candidate_text(response_json: dict[str, Any]) -> str:
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    content = candidates[0].get("content") or {}
    parts: list[str] = []
    for part in content.get("parts") or []:
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            parts.append(part["text"])
    return "".join(parts).strip()


def _history_contents(history: list[ChatMessage], message: str) -> list[dict[str, Any]]:
    contents = [
        {"role": turn.role, "parts": [{"text": turn.text}]}
        for turn in history
        if turn.role in {"user", "model"} and turn.text.strip()
    ]
    # The API rejects conversations that open with a model turn.
    while contents and contents[0]["role"] != "user":
        contents.pop(0)
    contents.append({"role": "user", "parts": [{"text": message}]})
    return contents


def _models_from_env() -> list[str]:
    raw = os.getenv("SYMPTOMSYNC_GEMINI_MODELS", "")
    models = [item.strip() for item in raw.split(",") if item.strip()]
    return models or list(DEFAULT_GEMINI_MODELS)


class GeminiChatClient:
    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://generativelanguage.googleapis.com",
        fallback_models: list[str] | None = None,
        timeout_seconds: float = 25.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.fallback_models = list(fallback_models or DEFAULT_GEMINI_MODELS)
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._available_models: list[str] | None = None

    @classmethod
    def from_env(cls) -> GeminiChatClient:
        return cls(
            api_key=os.getenv("GOOGLE_AI_API_KEY") or os.getenv("NEXT_PUBLIC_GOOGLE_AI_API_KEY"),
            base_url=os.getenv("GOOGLE_AI_API_BASE_URL", "https://generativelanguage.googleapis.com"),
            fallback_models=_models_from_env(),
            timeout_seconds=float(os.getenv("SYMPTOMSYNC_CHAT_TIMEOUT_SECONDS", "25")),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds, connect=8.0),
            transport=self._transport,
        )

    async def list_models(self, client: httpx.AsyncClient) -> list[str]:
        response = await client.get(f"{self.base_url}/v1/models", params={"key": self.api_key})
        if response.status_code >= 400:
            raise ChatProviderError(f"Failed to list Gemini models: {_provider_error_message(response)}")
        models: list[str] = []
        for item in response.json().get("models") or []:
            name = item.get("name") or ""
            if not name.startswith("models/gemini-"):
                continue
            lowered = name.lower()
            if "embedding" in lowered or "-pro" in lowered:
                continue
            if "generateContent" not in (item.get("supportedGenerationMethods") or []):
                continue
            cleaned = name.removeprefix("models/")
            if cleaned not in models:
                models.append(cleaned)
        return models

    async def _models(self, client: httpx.AsyncClient) -> list[str]:
        if self._available_models:
            return self._available_models
        try:
            discovered = await self.list_models(client)
        except (ChatProviderError, httpx.HTTPError, ValueError) as exc:
            logger.warning("gemini model discovery failed, using fallback list: %s", exc)
            discovered = []
        if discovered:
            self._available_models = discovered
            return discovered
        return self.fallback_models

    async def _generate(
        self,
        client: httpx.AsyncClient,
        model: str,
        contents: list[dict[str, Any]],
        system_instruction: str,
    ) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": contents,
            "generationConfig": _GENERATION_CONFIG,
            "safetySettings": _SAFETY_SETTINGS,
        }
        try:
            response = await client.post(
                f"{self.base_url}/v1beta/models/{model}:generateContent",
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise ChatProviderError(f"{model}: {exc}") from exc
        _raise_for_provider(response, model)
        try:
            body = response.json()
        except ValueError as exc:
            raise ChatProviderError(f"{model}: malformed response body") from exc
        text = _coerce_candidate_text(body)
        if not text:
            raise ChatProviderError("Failed to get text response from the AI.")
        return text

    async def reply(
        self,
        history: list[ChatMessage],
        message: str,
        *,
        system_instruction: str,
        rotation: ModelRotation,
    ) -> str:
        if not self.api_key:
            raise ChatProviderError("Missing GOOGLE_AI_API_KEY in environment variables")

        contents = _history_contents(history, message)
        async with self._client() as client:
            models = await self._models(client)
            last_error: ChatProviderError | None = None
            for model in rotation.ordered(models):
                try:
                    text = await self._generate(client, model, contents, system_instruction)
                except ChatProviderError as exc:
                    logger.warning("gemini model %s failed: %s", model, exc)
                    last_error = exc
                    continue
                rotation.advance_past(models, model)
                logger.info("gemini model used (%s)", model)
                return text
        if last_error is not None:
            raise last_error
        raise ChatProviderError("No Gemini models available to handle the request.")
