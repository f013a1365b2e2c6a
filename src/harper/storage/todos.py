"""
Harper Todo List

A flat task list kept next to the sessions in the same database. Items are
numbered from 1 in insertion order; removing one renumbers the rest.

Schema:
- todos:  id, description, created_at
"""

from __future__ import annotations

from datetime import datetime, timezone

from harper.logging import get_logger
from harper.storage.db import DbConnection, connect

logger = get_logger("harper.storage")


class TodoStore:
    """Ordered todo items backed by ``harper.storage.db``."""

    def __init__(self, conn: DbConnection | None = None):
        """Use ``conn`` (usually the audit store's connection) or a private in-memory database.

        Raises:
            StorageError: If the table cannot be created.
        """
        self._conn = conn if conn is not None else connect(":memory:")
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS todos (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                description TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

    def add(self, description: str) -> None:
        with self._conn.transaction() as conn:
            conn.execute(
                "INSERT INTO todos (description, created_at) VALUES (?, ?)",
                (description, datetime.now(timezone.utc).isoformat()),
            )
        logger.info("Todo added", extra={"operation": "todo_add"})

    def items(self) -> list[str]:
        rows = self._conn.execute("SELECT description FROM todos ORDER BY id")
        return [row["description"] for row in rows]

    def remove(self, index: int) -> str | None:
        """Delete the item at 1-based ``index``; None if there is no such item."""
        with self._conn.transaction() as conn:
            rows = conn.execute("SELECT id, description FROM todos ORDER BY id")
            if not 1 <= index <= len(rows):
                return None
            row = rows[index - 1]
            conn.execute("DELETE FROM todos WHERE id = ?", (row["id"],))
        logger.info("Todo removed", extra={"operation": "todo_remove"})
        return row["description"]

    def clear(self) -> int:
        """Delete every item and return how many there were."""
        with self._conn.transaction() as conn:
            count = len(conn.execute("SELECT id FROM todos"))
            conn.execute("DELETE FROM todos")
        return count
