from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class SQLiteRecordDB:
    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> str:
        return str(self._path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self.connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS appointment_reminders (
                  id TEXT PRIMARY KEY,
                  user_profile_id TEXT NOT NULL,
                  appointment_name TEXT NOT NULL,
                  date TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS medication_reminders (
                  id TEXT PRIMARY KEY,
                  user_profile_id TEXT NOT NULL,
                  medication_name TEXT NOT NULL,
                  dosage TEXT,
                  reminder_time TEXT NOT NULL,
                  recurrence TEXT,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS health_logs (
                  id TEXT PRIMARY KEY,
                  user_profile_id TEXT NOT NULL,
                  symptom_type TEXT,
                  severity INTEGER,
                  mood TEXT,
                  medication_intake TEXT,
                  notes TEXT,
                  start_date TEXT NOT NULL,
                  end_date TEXT,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS chat_messages (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  role TEXT NOT NULL,
                  text TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS action_audit (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  entity TEXT NOT NULL,
                  intent TEXT NOT NULL,
                  source TEXT NOT NULL,
                  status TEXT NOT NULL,
                  lifecycle_json TEXT NOT NULL,
                  payload_json TEXT NOT NULL,
                  record_json TEXT,
                  error_message TEXT,
                  created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_appointment_user ON appointment_reminders(user_profile_id, date);
                CREATE INDEX IF NOT EXISTS idx_medication_user ON medication_reminders(user_profile_id, reminder_time);
                CREATE INDEX IF NOT EXISTS idx_health_log_user ON health_logs(user_profile_id, start_date);
                CREATE INDEX IF NOT EXISTS idx_chat_user ON chat_messages(user_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_action_audit_user ON action_audit(user_id, created_at);
                """
            )
