from __future__ import annotations

import json
import uuid
from typing import Any

from .database import SQLiteStore
from careassist_core.time_utils import to_iso, utc_now


class TurnAuditStore:
    def __init__(self, db: SQLiteStore) -> None:
        self._db = db

    def record_turn(
        self,
        *,
        user_id: str,
        session_key: str,
        turn_id: str,
        generation: int,
        status: str,
        detected_language: str | None,
        lifecycle: list[str],
        symptom_ids: list[str],
        condition_ids: list[str],
    ) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO turn_audit (
                  id, user_id, session_key, turn_id, generation, status, detected_language,
                  lifecycle_json, symptom_ids_json, condition_ids_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    uuid.uuid4().hex,
                    user_id,
                    session_key,
                    turn_id,
                    generation,
                    status,
                    detected_language,
                    json.dumps(lifecycle),
                    json.dumps(symptom_ids),
                    json.dumps(condition_ids),
                    to_iso(utc_now()),
                ),
            )

    def list_turns(self, *, user_id: str, session_key: str, limit: int = 50) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT turn_id, generation, status, detected_language, lifecycle_json,
                       symptom_ids_json, condition_ids_json, created_at
                FROM turn_audit
                WHERE user_id = ? AND session_key = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (user_id, session_key, max(1, limit)),
            ).fetchall()
        return [
            {
                "turn_id": row["turn_id"],
                "generation": row["generation"],
                "status": row["status"],
                "detected_language": row["detected_language"],
                "lifecycle": json.loads(row["lifecycle_json"]),
                "symptom_ids": json.loads(row["symptom_ids_json"]),
                "condition_ids": json.loads(row["condition_ids_json"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]
