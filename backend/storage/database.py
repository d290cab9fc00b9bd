from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class SQLiteStore:
    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

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
                CREATE TABLE IF NOT EXISTS preferences (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  key TEXT NOT NULL,
                  value_json TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  UNIQUE(user_id, key)
                );

                CREATE TABLE IF NOT EXISTS turn_audit (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  session_key TEXT NOT NULL,
                  turn_id TEXT NOT NULL,
                  generation INTEGER NOT NULL,
                  status TEXT NOT NULL,
                  detected_language TEXT,
                  lifecycle_json TEXT NOT NULL,
                  symptom_ids_json TEXT NOT NULL,
                  condition_ids_json TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_preferences_user_key
                  ON preferences(user_id, key);
                CREATE INDEX IF NOT EXISTS idx_turn_audit_user_session
                  ON turn_audit(user_id, session_key, created_at);
                """
            )
