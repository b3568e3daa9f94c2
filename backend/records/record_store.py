from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from .database import SQLiteRecordDB
from .time_utils import to_iso, utc_now


class RecordNotFoundError(LookupError):
    pass


class RecordScopeError(PermissionError):
    pass


@dataclass(frozen=True)
class TableSpec:
    table: str
    columns: tuple[str, ...]
    order_by: str


RECORD_TABLES: dict[str, TableSpec] = {
    "appointment": TableSpec(
        table="appointment_reminders",
        columns=("appointment_name", "date"),
        order_by="date ASC",
    ),
    "medication": TableSpec(
        table="medication_reminders",
        columns=("medication_name", "dosage", "reminder_time", "recurrence"),
        order_by="reminder_time ASC",
    ),
    "health_log": TableSpec(
        table="health_logs",
        columns=(
            "symptom_type",
            "severity",
            "mood",
            "medication_intake",
            "notes",
            "start_date",
            "end_date",
        ),
        order_by="start_date DESC",
    ),
}


class RecordStore:
    """Read/write access to one record table, scoped to the owning user.

    Every statement filters on ``user_profile_id`` so a store can never read or
    mutate another user's rows, even when handed a foreign record id.
    """

    def __init__(self, db: SQLiteRecordDB, spec: TableSpec, owner_id: str) -> None:
        self._db = db
        self._spec = spec
        self._owner_id = owner_id

    @property
    def table(self) -> str:
        return self._spec.table

    def _select_columns(self) -> str:
        return ", ".join(("id", "user_profile_id", *self._spec.columns, "created_at", "updated_at"))

    def _clean(self, payload: dict[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in payload.items() if key in self._spec.columns}

    def _fetch(self, conn, record_id: str) -> dict[str, Any] | None:
        row = conn.execute(
            f"SELECT {self._select_columns()} FROM {self._spec.table} WHERE id = ? AND user_profile_id = ?",
            (record_id, self._owner_id),
        ).fetchone()
        return dict(row) if row else None

    async def list_all(self, user_id: str) -> list[dict[str, Any]]:
        if user_id != self._owner_id:
            raise RecordScopeError("Cross-user read is blocked.")
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {self._select_columns()}
                FROM {self._spec.table}
                WHERE user_profile_id = ?
                ORDER BY {self._spec.order_by}, created_at ASC
                """,
                (user_id,),
            ).fetchall()
            return [dict(row) for row in rows]

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        owner = payload.get("user_profile_id", self._owner_id)
        if owner != self._owner_id:
            raise RecordScopeError("Cross-user write is blocked.")
        fields = self._clean(payload)
        now = to_iso(utc_now())
        record_id = uuid.uuid4().hex
        columns = ["id", "user_profile_id", *fields.keys(), "created_at", "updated_at"]
        values = [record_id, self._owner_id, *fields.values(), now, now]
        placeholders = ", ".join("?" for _ in columns)
        with self._db.connection() as conn:
            conn.execute(
                f"INSERT INTO {self._spec.table} ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
            return self._fetch(conn, record_id) or {}

    async def update(self, record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        fields = self._clean(changes)
        if not fields:
            raise ValueError("No valid fields to update.")
        assignments = ", ".join(f"{key} = ?" for key in fields)
        with self._db.connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE {self._spec.table}
                SET {assignments}, updated_at = ?
                WHERE id = ? AND user_profile_id = ?
                """,
                (*fields.values(), to_iso(utc_now()), record_id, self._owner_id),
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"Record not found: {record_id}")
            return self._fetch(conn, record_id) or {}

    async def delete(self, record_id: str) -> dict[str, Any]:
        with self._db.connection() as conn:
            existing = self._fetch(conn, record_id)
            if existing is None:
                raise RecordNotFoundError(f"Record not found: {record_id}")
            conn.execute(
                f"DELETE FROM {self._spec.table} WHERE id = ? AND user_profile_id = ?",
                (record_id, self._owner_id),
            )
            return existing
