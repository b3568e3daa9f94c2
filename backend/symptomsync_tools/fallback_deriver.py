from __future__ import annotations

import re
from typing import Any

from symptomsync_agent_core.models import ActionPayload

from .datetime_resolver import DateTimeResolver


_LOG_KEYWORD_RE = re.compile(r"\b(?:log|logs|logged|logging|record|records|recorded)\b", re.IGNORECASE)
_SMALL_NUMBER_RE = re.compile(r"\b\d{1,2}\b")
_SEVERITY_RE = re.compile(r"\b(10|[1-9])\b")
_SEVERITY_SEGMENT_RE = re.compile(
    r"^(?:severity|sev|pain|level|rated?)?\s*(?:of|is|at|:)?\s*(?:10|[1-9])(?:\s*/\s*10)?$",
    re.IGNORECASE,
)
_DATE_SEGMENT_RE = re.compile(
    r"\b(?:today|tonight|tomorrow|tmr|yesterday)\b|\d{4}-\d{2}-\d{2}|\d\s*(?:am|pm)\b|\d:\d{2}",
    re.IGNORECASE,
)
_COMMAND_PREFIX_RE = re.compile(
    r"^(?:please\s+)?(?:log|record)\b\s*(?:a\s+|an\s+|my\s+|that\s+)?(?:health\s+log\s+(?:for\s+)?)?",
    re.IGNORECASE,
)


def should_derive(message: str) -> bool:
    return bool(_LOG_KEYWORD_RE.search(message) or _SMALL_NUMBER_RE.search(message))


def derive_health_log_action(message: str | None, datetimes: DateTimeResolver) -> ActionPayload | None:
    """Best-effort health log from the user's own words when the model emitted no action.

    The result is only ever staged for review; it is never applied without
    an explicit confirmation.
    """
    text = (message or "").strip()
    if not text or not should_derive(text):
        return None

    segments = [part.strip() for part in text.split(",") if part.strip()]
    if not segments:
        return None

    date_segment = next((part for part in segments if _DATE_SEGMENT_RE.search(part)), None)
    severity: int | None = None
    severity_segment: str | None = None
    for part in segments:
        if part is date_segment:
            continue
        match = _SEVERITY_RE.search(part)
        if match:
            severity = int(match.group(1))
            if _SEVERITY_SEGMENT_RE.fullmatch(part):
                severity_segment = part
            break

    first = segments[0]
    if first is date_segment or first is severity_segment:
        return None
    symptom_type = _COMMAND_PREFIX_RE.sub("", first).strip()
    if not symptom_type:
        return None

    data: dict[str, Any] = {"symptom_type": symptom_type}
    if severity is not None:
        data["severity"] = severity
    if date_segment:
        data["start_date"] = datetimes.resolve(date_segment) or date_segment
    notes = [part for part in segments[1:] if part is not date_segment and part is not severity_segment]
    if notes:
        data["notes"] = ", ".join(notes)
    return ActionPayload(entity="health_log", intent="create", data=data)
