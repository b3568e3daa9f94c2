from __future__ import annotations

from typing import Any

from .action_parser import ACTION_BLOCK_TAG
from .datetime_resolver import DateTimeResolver


def _display(value: Any, datetimes: DateTimeResolver) -> str:
    parsed = datetimes.resolve_datetime(value)
    if parsed is None:
        return str(value) if value else "N/A"
    return parsed.astimezone(datetimes.tz).strftime("%Y-%m-%d %H:%M")


def build_user_context(snapshots: dict[str, list[dict[str, Any]]], datetimes: DateTimeResolver) -> str:
    lines = ["Appointments:"]
    appointments = snapshots.get("appointment") or []
    if not appointments:
        lines.append("- None")
    for record in appointments:
        lines.append(f"- {record.get('appointment_name')} on {_display(record.get('date'), datetimes)}")

    lines.extend(["", "Medications:"])
    medications = snapshots.get("medication") or []
    if not medications:
        lines.append("- None")
    for record in medications:
        lines.append(
            f"- {record.get('medication_name')}, dosage: {record.get('dosage') or 'N/A'}, "
            f"next time: {_display(record.get('reminder_time'), datetimes)}, "
            f"recurrence: {record.get('recurrence') or 'N/A'}"
        )

    lines.extend(["", "Recent Health Logs:"])
    logs = sorted(snapshots.get("health_log") or [], key=lambda item: str(item.get("start_date") or ""))
    if not logs:
        lines.append("- None")
    for record in logs[-3:]:
        severity = record.get("severity")
        lines.append(
            f"- Symptom: {record.get('symptom_type') or 'N/A'}, "
            f"severity: {severity if severity is not None else 0}, "
            f"start: {_display(record.get('start_date'), datetimes)}"
        )
    return "\n".join(lines)


def build_system_instruction(now_iso: str, user_context: str | None) -> str:
    return f"""You are SymptomSync Assistant, a health expert.
Answer user questions about their health accurately, empathetically, and in detail.
Provide advice based on relevant medical knowledge.
Today's date/time is {now_iso}. Resolve relative dates like "today", "tomorrow", "yesterday" and "tonight" using this.

ACTIONS ARE MANDATORY when the user asks to add, update or delete an appointment, medication, or health log.
Always include EXACTLY ONE fenced action block when the user requests a change, even if you must ask follow-up questions.
If a required field is missing, ask for it and still include a best-effort action block with the fields you know.
Never fabricate unknown data; leave unknown fields out.

Required fields per entity:
  - appointment: appointment_name AND date with a time of day.
  - medication: medication_name AND reminder_time with a time of day.
  - health_log: symptom_type (severity 0-10, start_date, mood, medication_intake and notes are optional).

Use this exact format for the action block:
```{ACTION_BLOCK_TAG}
{{
  "entity": "appointment" | "medication" | "health_log",
  "intent": "create" | "update" | "delete",
  "data": {{
    // appointment: "id" (preferred) or "appointment_name", "date" (ISO or natural language WITH a time)
    // medication: "id" (preferred) or "medication_name", "reminder_time" (ISO or natural language WITH a time), optional "dosage", "recurrence"
    // health_log: "id" (preferred) or "symptom_type", optional "severity", "start_date", "notes", "mood", "medication_intake"
  }}
}}
```
To update or delete, reference the record by its id when you know it, otherwise by its name or date.
Keep the rest of the response natural and supportive.

Here is some user-specific data you can reference:
{user_context or "No user data available."}

You have the conversation history, so refer to earlier messages when it helps.
"""
