from __future__ import annotations

import json
import uuid
from typing import Any

from .database import SQLiteStore
from careassist_core.time_utils import to_iso, utc_now


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class SQLitePreferenceStore:
    """Key/value preferences scoped to one user."""

    def __init__(self, db: SQLiteStore, user_id: str) -> None:
        self._db = db
        self.user_id = user_id

    def get(self, key: str, default: Any = None) -> Any:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT value_json
                FROM preferences
                WHERE user_id = ? AND key = ?
                LIMIT 1
                """,
                (self.user_id, key),
            ).fetchone()
        if not row:
            return default
        return json.loads(row["value_json"])

    def set(self, key: str, value: Any) -> None:
        now = to_iso(utc_now())
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO preferences (id, user_id, key, value_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, key) DO UPDATE SET
                  value_json = excluded.value_json,
                  updated_at = excluded.updated_at
                """,
                (uuid.uuid4().hex, self.user_id, key, _json_dumps(value), now, now),
            )
