"""SQLite-backed queue of mutations that could not reach the store."""

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

MUTATION_UPDATE = "update_opportunity"
MUTATION_DELETE = "delete_activity"


@dataclass
class PendingMutation:
    """A queued write, replayed in insertion order."""

    id: int
    kind: str  # update_opportunity | delete_activity
    record_id: str
    payload: dict[str, Any]
    created_at: datetime
    status: str  # pending | done | failed
    attempts: int
    last_error: Optional[str]


class PendingMutationQueue:
    """
    Simple local queue: writes that failed with StoreUnavailable are kept here
    and replayed later. No conflict resolution; last write wins on the store.
    """

    def __init__(self, db_path: str | Path = "sales_funnel_queue.db"):
        self._db_path = Path(db_path)
        self._ensure_schema()

    def _connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        with self._connection() as conn:
            conn.executescript(schema_path.read_text())

    @staticmethod
    def _from_row(row: sqlite3.Row) -> PendingMutation:
        return PendingMutation(
            id=row["id"],
            kind=row["kind"],
            record_id=row["record_id"],
            payload=json.loads(row["payload"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            status=row["status"],
            attempts=row["attempts"],
            last_error=row["last_error"],
        )

    def enqueue(self, kind: str, record_id: str, payload: Optional[dict[str, Any]] = None) -> PendingMutation:
        """Append a mutation. Returns the stored record."""
        if kind not in (MUTATION_UPDATE, MUTATION_DELETE):
            raise ValueError(f"Unknown mutation kind: {kind}")
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO pending_mutations (kind, record_id, payload, created_at) VALUES (?, ?, ?, ?)",
                (kind, record_id, json.dumps(payload or {}, default=str), now),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM pending_mutations WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return self._from_row(row)

    def pending(self) -> list[PendingMutation]:
        """Pending mutations, oldest first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM pending_mutations WHERE status = 'pending' ORDER BY id"
            ).fetchall()
        return [self._from_row(r) for r in rows]

    def count(self) -> int:
        with self._connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM pending_mutations WHERE status = 'pending'").fetchone()
        return int(row["n"])

    def mark_done(self, mutation_id: int) -> None:
        with self._connection() as conn:
            conn.execute(
                "UPDATE pending_mutations SET status = 'done', attempts = attempts + 1 WHERE id = ?",
                (mutation_id,),
            )
            conn.commit()

    def record_failure(self, mutation_id: int, error: str, *, give_up: bool = False) -> None:
        """Count a failed replay; give_up moves it out of the pending set."""
        status = "failed" if give_up else "pending"
        with self._connection() as conn:
            conn.execute(
                "UPDATE pending_mutations SET attempts = attempts + 1, last_error = ?, status = ? WHERE id = ?",
                (error, status, mutation_id),
            )
            conn.commit()
