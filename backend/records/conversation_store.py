from __future__ import annotations

import uuid
from typing import Any

from .database import SQLiteRecordDB
from .time_utils import to_iso, utc_now


class ConversationStore:
    def __init__(self, db: SQLiteRecordDB) -> None:
        self._db = db

    def append(self, *, user_id: str, role: str, text: str) -> dict[str, Any]:
        message = {
            "id": uuid.uuid4().hex,
            "user_id": user_id,
            "role": role,
            "text": text,
            "created_at": to_iso(utc_now()),
        }
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO chat_messages (id, user_id, role, text, created_at)
                VALUES (:id, :user_id, :role, :text, :created_at)
                """,
                message,
            )
        return message

    def history(self, user_id: str) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT role, text, created_at
                FROM chat_messages
                WHERE user_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (user_id,),
            ).fetchall()
            return [dict(row) for row in rows]

    def clear(self, user_id: str) -> int:
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM chat_messages WHERE user_id = ?", (user_id,))
            return cursor.rowcount
