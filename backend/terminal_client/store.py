"""
Durable local store for queued actions.

One SQLite file per terminal, opened in WAL mode so the sync thread can
write while the UI thread reads. Each call opens its own connection;
sqlite3 connections are not shared across threads.
"""
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from .actions import ActionStatus, QueuedAction

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS queued_actions (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    payload TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    retries INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL,
    error TEXT,
    last_attempt INTEGER
);
CREATE INDEX IF NOT EXISTS queued_actions_status ON queued_actions (status, timestamp);
"""

COLUMNS = 'id, type, payload, timestamp, retries, status, error, last_attempt'


class QueueStore:

    def __init__(self, path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.execute('PRAGMA journal_mode=WAL')
            conn.executescript(SCHEMA)

    @contextmanager
    def connect(self):
        conn = sqlite3.connect(self.path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def add(self, action: QueuedAction):
        with self.connect() as conn:
            conn.execute(
                f"INSERT INTO queued_actions ({COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                action.to_row(),
            )

    def save(self, action: QueuedAction):
        with self.connect() as conn:
            conn.execute(
                """
                UPDATE queued_actions
                SET retries = ?, status = ?, error = ?, last_attempt = ?
                WHERE id = ?
                """,
                (action.retries, action.status.value, action.error, action.last_attempt, action.id),
            )

    def get(self, action_id):
        with self.connect() as conn:
            row = conn.execute(
                f"SELECT {COLUMNS} FROM queued_actions WHERE id = ?", (action_id,)
            ).fetchone()
        return QueuedAction.from_row(row) if row else None

    def delete(self, action_id):
        with self.connect() as conn:
            conn.execute("DELETE FROM queued_actions WHERE id = ?", (action_id,))

    def by_status(self, status: ActionStatus):
        """Actions in ``status``, oldest first."""
        with self.connect() as conn:
            rows = conn.execute(
                f"SELECT {COLUMNS} FROM queued_actions WHERE status = ? ORDER BY timestamp, rowid",
                (status.value,),
            ).fetchall()
        return [QueuedAction.from_row(row) for row in rows]

    def counts(self) -> dict:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM queued_actions GROUP BY status"
            ).fetchall()
        return {row['status']: row['n'] for row in rows}

    def reset_status(self, old: ActionStatus, new: ActionStatus, reset_retries=False) -> int:
        query = "UPDATE queued_actions SET status = ?"
        if reset_retries:
            query += ", retries = 0, error = NULL"
        with self.connect() as conn:
            cursor = conn.execute(query + " WHERE status = ?", (new.value, old.value))
        return cursor.rowcount

    def delete_status(self, status: ActionStatus) -> int:
        with self.connect() as conn:
            cursor = conn.execute("DELETE FROM queued_actions WHERE status = ?", (status.value,))
        return cursor.rowcount
