from .audit_store import ActionAuditStore
from .conversation_store import ConversationStore
from .database import SQLiteRecordDB
from .record_store import RECORD_TABLES, RecordNotFoundError, RecordScopeError, RecordStore
from .service import RecordService

__all__ = [
    "RECORD_TABLES",
    "ActionAuditStore",
    "ConversationStore",
    "RecordNotFoundError",
    "RecordScopeError",
    "RecordService",
    "RecordStore",
    "SQLiteRecordDB",
]
