from __future__ import annotations

import json
from typing import Any

from .database import SQLiteRecordDB
from .time_utils import to_iso, utc_now


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class ActionAuditStore:
    def __init__(self, db: SQLiteRecordDB) -> None:
        self._db = db

    def append(
        self,
        *,
        action_id: str,
        user_id: str,
        entity: str,
        intent: str,
        source: str,
        status: str,
        lifecycle: list[str],
        payload: dict[str, Any],
        record: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO action_audit (
                  id, user_id, entity, intent, source, status, lifecycle_json,
                  payload_json, record_json, error_message, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  status = excluded.status,
                  lifecycle_json = excluded.lifecycle_json,
                  record_json = excluded.record_json,
                  error_message = excluded.error_message,
                  created_at = excluded.created_at
                """,
                (
                    action_id,
                    user_id,
                    entity,
                    intent,
                    source,
                    status,
                    _json_dumps(lifecycle),
                    _json_dumps(payload),
                    _json_dumps(record) if record is not None else None,
                    error_message,
                    to_iso(utc_now()),
                ),
            )

    def recent(self, user_id: str, limit: int) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id AS action_id, created_at, entity, intent, source, status,
                       lifecycle_json, error_message
                FROM action_audit
                WHERE user_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (user_id, max(1, limit)),
            ).fetchall()
        items: list[dict[str, Any]] = []
        for row in rows:
            item = dict(row)
            item["lifecycle"] = json.loads(item.pop("lifecycle_json"))
            items.append(item)
        return items
