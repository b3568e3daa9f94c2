from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from symptomsync_agent_core.models import ActionPayload


ACTION_BLOCK_TAG = "symptomsync-action"
_ACTION_BLOCK_RE = re.compile(r"```" + re.escape(ACTION_BLOCK_TAG) + r"\s*([\s\S]*?)```")


def extract_json_object(raw_text: str) -> dict[str, Any] | None:
    text = (raw_text or "").strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
        if isinstance(payload, dict):
            return payload
    except json.JSONDecodeError:
        pass

    for start_idx in [idx for idx, char in enumerate(text) if char == "{"]:
        depth = 0
        in_string = False
        escaped = False
        for end_idx in range(start_idx, len(text)):
            char = text[end_idx]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
            if depth == 0:
                candidate = text[start_idx : end_idx + 1]
                try:
                    payload = json.loads(candidate)
                    if isinstance(payload, dict):
                        return payload
                except json.JSONDecodeError:
                    pass
                break
    return None


def _payload_from(candidate: Any) -> ActionPayload | None:
    if not isinstance(candidate, dict):
        return None
    try:
        return ActionPayload.model_validate(candidate)
    except ValidationError:
        return None


def parse_action(reply: str | None) -> ActionPayload | None:
    """Extract the action a model reply asks for, or ``None``.

    The fenced ``symptomsync-action`` block wins; without a usable block the
    first balanced JSON object anywhere in the reply is tried instead.
    """
    if not reply:
        return None
    match = _ACTION_BLOCK_RE.search(reply)
    if match:
        try:
            payload = _payload_from(json.loads(match.group(1)))
        except json.JSONDecodeError:
            payload = None
        if payload:
            return payload
    return _payload_from(extract_json_object(reply))


def format_action_block(payload: ActionPayload) -> str:
    body = json.dumps(payload.model_dump(), indent=2, ensure_ascii=False)
    return f"```{ACTION_BLOCK_TAG}\n{body}\n```"
