"""
Harper Database Connection

One interface over SQLite and PostgreSQL, chosen from the URL:

- ``postgresql://`` or ``postgres://`` -> psycopg (``pip install 'harper[postgres]'``)
- anything else (file path, ``:memory:``) -> sqlite3, WAL journal mode

SQL is written SQLite-style; ``?`` placeholders become ``%s`` and
``AUTOINCREMENT`` keys become ``SERIAL`` on PostgreSQL.

Every driver error is re-raised as StorageError so callers never need to
know which backend is active.
"""

from __future__ import annotations

import re
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from harper.exceptions import StorageError


class DbConnection:
    """Thread-safe wrapper around a DB-API connection returning dict rows."""

    def __init__(self, conn: Any, *, is_postgres: bool = False) -> None:
        self._conn = conn
        self.is_postgres = is_postgres
        self._lock = threading.RLock()

    def _sql(self, sql: str) -> str:
        if not self.is_postgres:
            return sql
        sql = sql.replace("?", "%s")
        return re.sub(r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT", "SERIAL PRIMARY KEY", sql, flags=re.IGNORECASE)

    def execute(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Run one statement and return all result rows (empty for writes)."""
        with self._lock:
            try:
                if self.is_postgres:
                    with self._conn.cursor() as cur:
                        cur.execute(self._sql(sql), params or None)
                        rows = cur.fetchall() if cur.description else []
                else:
                    cur = self._conn.execute(sql, params)
                    rows = cur.fetchall()
            except Exception as e:
                self._rollback_quietly()
                raise StorageError("execute", f"{type(e).__name__}: {e}", details={"sql": sql[:200]}) from e
        return [dict(r) for r in rows]

    def executescript(self, sql: str) -> None:
        """Run semicolon-separated DDL and commit."""
        with self._lock:
            try:
                if self.is_postgres:
                    with self._conn.cursor() as cur:
                        for stmt in self._sql(sql).split(";"):
                            if stmt.strip():
                                cur.execute(stmt)
                    self._conn.commit()
                else:
                    self._conn.executescript(sql)
            except Exception as e:
                self._rollback_quietly()
                raise StorageError("schema", f"{type(e).__name__}: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[DbConnection]:
        """Group statements; commit on success, roll back and re-raise on error."""
        with self._lock:
            try:
                yield self
                self._conn.commit()
            except StorageError:
                self._rollback_quietly()
                raise
            except Exception as e:
                self._rollback_quietly()
                raise StorageError("commit", f"{type(e).__name__}: {e}") from e

    def upsert(self, table: str, pk: str, columns: list[str], values: tuple) -> None:
        """Insert a row or replace the existing row with the same primary key."""
        placeholders = ", ".join(["?"] * len(columns))
        col_list = ", ".join(columns)
        if self.is_postgres:
            updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns if c != pk)
            sql = (
                f"INSERT INTO {table} ({col_list}) VALUES ({placeholders}) "
                f"ON CONFLICT ({pk}) DO UPDATE SET {updates}"
            )
        else:
            sql = f"INSERT OR REPLACE INTO {table} ({col_list}) VALUES ({placeholders})"
        self.execute(sql, values)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _rollback_quietly(self) -> None:
        try:
            self._conn.rollback()
        except Exception:  # noqa: BLE001
            # The original error is the one worth reporting
            pass


def connect(db_url: str) -> DbConnection:
    """Open a connection for a PostgreSQL URL or an SQLite path.

    Raises:
        StorageError: If the database cannot be opened.
    """
    if db_url.startswith(("postgresql://", "postgres://")):
        try:
            import psycopg
            from psycopg.rows import dict_row
        except ImportError:
            raise StorageError(
                "connect", "PostgreSQL support requires psycopg. Install with: pip install 'harper[postgres]'"
            ) from None
        try:
            conn = psycopg.connect(db_url, row_factory=dict_row, autocommit=False)
        except psycopg.Error as e:
            raise StorageError("connect", str(e)) from e
        return DbConnection(conn, is_postgres=True)

    try:
        conn = sqlite3.connect(db_url, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        if db_url != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
    except sqlite3.Error as e:
        raise StorageError("connect", f"Cannot open database {db_url}: {e}") from e
    return DbConnection(conn, is_postgres=False)
