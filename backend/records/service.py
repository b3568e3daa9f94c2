from __future__ import annotations

from .audit_store import ActionAuditStore
from .conversation_store import ConversationStore
from .database import SQLiteRecordDB
from .record_store import RECORD_TABLES, RecordStore


class RecordService:
    def __init__(self, db: SQLiteRecordDB) -> None:
        self.db = db
        self.conversation = ConversationStore(db)
        self.audit = ActionAuditStore(db)

    def store(self, entity: str, user_id: str) -> RecordStore:
        spec = RECORD_TABLES.get(entity)
        if spec is None:
            raise KeyError(f"Unknown record kind: {entity}")
        return RecordStore(self.db, spec, user_id)

    def stores_for(self, user_id: str) -> dict[str, RecordStore]:
        return {entity: self.store(entity, user_id) for entity in RECORD_TABLES}
