from .audit_store import TurnAuditStore
from .database import SQLiteStore
from .preference_store import SQLitePreferenceStore

__all__ = [
    "SQLitePreferenceStore",
    "SQLiteStore",
    "TurnAuditStore",
]
