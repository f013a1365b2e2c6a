"""
Harper Audit / Session Store

Durable, append-only record of every operation attempt plus saved
conversations. Backed by ``harper.storage.db`` (SQLite by default,
PostgreSQL via DATABASE_URL).

Audit entries form a SHA-256 hash chain per session:

    hash = sha256(previous_hash + canonical_json(entry without hashes))

starting from GENESIS_HASH. The canonical JSON text is stored verbatim so
``verify_chain`` recomputes hashes from exactly the bytes that were
hashed. There is no API to update or delete entries.

Writes for one session are serialized by a per-session lock; different
sessions never wait on each other's chain.

Schema:
- sessions:       id, created_at, updated_at
- messages:       session_id, position, role, content
- audit_entries:  one row per AuditEntry with filter columns + entry_json
"""

from __future__ import annotations

import hashlib
import json
import threading
from datetime import datetime, timezone

from harper.core.models import AuditEntry, ExecutionStatus, Message, Session
from harper.exceptions import SessionNotFoundError, StorageError
from harper.logging import get_logger
from harper.storage.db import DbConnection, connect

logger = get_logger("harper.audit")

GENESIS_HASH = "0" * 64
EXPORT_FORMATS = ("txt", "json")


def canonical_payload(entry: AuditEntry) -> str:
    """Deterministic JSON for hashing (hash fields excluded)."""
    data = entry.model_dump(mode="json", exclude={"hash", "previous_hash"})
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def chain_hash(previous_hash: str, payload: str) -> str:
    return hashlib.sha256(f"{previous_hash}{payload}".encode()).hexdigest()


class AuditStore:
    """Append-only audit trail and session persistence."""

    def __init__(self, db_url: str = "harper.db"):
        """Open (and create if needed) the store.

        Args:
            db_url: ``postgresql://...`` for PostgreSQL, otherwise an SQLite
                file path or ``:memory:``.

        Raises:
            StorageError: If the database cannot be opened or initialized.
        """
        self._db_url = db_url
        self._conn: DbConnection = connect(db_url)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, position);

            CREATE TABLE IF NOT EXISTS audit_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                sequence INTEGER NOT NULL,
                timestamp TEXT NOT NULL,
                source TEXT NOT NULL,
                kind TEXT NOT NULL,
                command TEXT NOT NULL,
                status TEXT NOT NULL,
                requires_approval INTEGER NOT NULL,
                approved INTEGER,
                exit_code INTEGER,
                duration_ms REAL NOT NULL,
                entry_json TEXT NOT NULL,
                hash TEXT NOT NULL,
                previous_hash TEXT NOT NULL,
                UNIQUE (session_id, sequence)
            );

            CREATE INDEX IF NOT EXISTS idx_audit_session ON audit_entries(session_id, sequence);
            CREATE INDEX IF NOT EXISTS idx_audit_status ON audit_entries(session_id, status)
        """)

    def _session_lock(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    # ─── Audit trail ─────────────────────────────────────────

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Persist ``entry`` as the session's next audit record.

        Assigns ``sequence``, ``previous_hash`` and ``hash``; the passed
        placeholders are ignored. Returns the stored entry.

        Raises:
            StorageError: If the write fails. Nothing is partially written.
        """
        session_id = entry.session_id
        with self._session_lock(session_id):
            try:
                last = self._conn.execute(
                    "SELECT sequence, hash FROM audit_entries WHERE session_id = ? "
                    "ORDER BY sequence DESC LIMIT 1",
                    (session_id,),
                )
                sequence = last[0]["sequence"] + 1 if last else 0
                previous_hash = last[0]["hash"] if last else GENESIS_HASH

                stored = entry.model_copy(update={"sequence": sequence, "previous_hash": previous_hash})
                payload = canonical_payload(stored)
                stored = stored.model_copy(update={"hash": chain_hash(previous_hash, payload)})

                with self._conn.transaction() as conn:
                    self._ensure_session(conn, session_id, stored.timestamp)
                    conn.execute(
                        "INSERT INTO audit_entries (session_id, sequence, timestamp, source, kind, command, "
                        "status, requires_approval, approved, exit_code, duration_ms, entry_json, hash, "
                        "previous_hash) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            session_id,
                            sequence,
                            stored.timestamp.isoformat(),
                            stored.source,
                            stored.operation.kind.value,
                            stored.operation.text,
                            stored.result.status.value,
                            int(stored.decision.requires_approval),
                            None if stored.approval is None else int(stored.approval.approved),
                            stored.result.exit_code,
                            stored.result.duration_ms,
                            payload,
                            stored.hash,
                            previous_hash,
                        ),
                    )
            except StorageError:
                logger.error(
                    "Failed to append audit entry",
                    exc_info=True,
                    extra={"session_id": session_id, "operation": entry.operation.kind.value},
                )
                raise

        logger.debug(
            "Audit entry appended",
            extra={"session_id": session_id, "sequence": sequence, "status": stored.result.status.value},
        )
        return stored

    def query(
        self,
        session_id: str,
        limit: int = 20,
        status: ExecutionStatus | None = None,
        approved: bool | None = None,
    ) -> list[AuditEntry]:
        """Newest-first entries for one session, at most ``limit``.

        ``approved=True`` keeps entries with an approval that was granted,
        ``approved=False`` those with an approval that was rejected.
        Filters are AND-composed.
        """
        if limit <= 0:
            return []
        sql = "SELECT entry_json, hash, previous_hash FROM audit_entries WHERE session_id = ?"
        params: list = [session_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        if approved is not None:
            sql += " AND approved = ?"
            params.append(int(approved))
        sql += " ORDER BY sequence DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_entry(row) for row in self._conn.execute(sql, tuple(params))]

    def entries(self, session_id: str) -> list[AuditEntry]:
        """All entries of a session in sequence order."""
        rows = self._conn.execute(
            "SELECT entry_json, hash, previous_hash FROM audit_entries WHERE session_id = ? ORDER BY sequence",
            (session_id,),
        )
        return [self._row_to_entry(row) for row in rows]

    def count(self, session_id: str) -> int:
        rows = self._conn.execute("SELECT COUNT(*) AS n FROM audit_entries WHERE session_id = ?", (session_id,))
        return int(rows[0]["n"])

    def verify_chain(self, session_id: str) -> tuple[bool, str]:
        """Recompute the session's hash chain.

        Returns (is_valid, message).
        """
        rows = self._conn.execute(
            "SELECT sequence, entry_json, hash, previous_hash FROM audit_entries "
            "WHERE session_id = ? ORDER BY sequence",
            (session_id,),
        )
        if not rows:
            return True, "Empty audit trail; nothing to verify"

        expected_prev = GENESIS_HASH
        for i, row in enumerate(rows):
            if row["sequence"] != i:
                return False, f"Sequence gap: expected {i}, found {row['sequence']}"
            if row["previous_hash"] != expected_prev:
                return False, f"Chain broken at entry {i}: previous_hash does not match"
            if chain_hash(row["previous_hash"], row["entry_json"]) != row["hash"]:
                return False, f"Entry {i} was modified: hash mismatch"
            expected_prev = row["hash"]
        return True, f"Audit chain intact ({len(rows)} entries)"

    @staticmethod
    def _row_to_entry(row: dict) -> AuditEntry:
        data = json.loads(row["entry_json"])
        data["hash"] = row["hash"]
        data["previous_hash"] = row["previous_hash"]
        return AuditEntry.model_validate(data)

    # ─── Sessions ────────────────────────────────────────────

    @staticmethod
    def _ensure_session(conn: DbConnection, session_id: str, created_at: datetime) -> None:
        if not conn.execute("SELECT id FROM sessions WHERE id = ?", (session_id,)):
            stamp = created_at.isoformat()
            conn.execute(
                "INSERT INTO sessions (id, created_at, updated_at) VALUES (?, ?, ?)",
                (session_id, stamp, stamp),
            )

    def session_save(self, session: Session) -> None:
        """Persist the session's messages, replacing any earlier save.

        Raises:
            StorageError: If the write fails.
        """
        now = datetime.now(timezone.utc).isoformat()
        with self._session_lock(session.id):
            with self._conn.transaction() as conn:
                conn.upsert(
                    "sessions",
                    "id",
                    ["id", "created_at", "updated_at"],
                    (session.id, session.created_at.isoformat(), now),
                )
                conn.execute("DELETE FROM messages WHERE session_id = ?", (session.id,))
                for position, message in enumerate(session.messages):
                    conn.execute(
                        "INSERT INTO messages (session_id, position, role, content) VALUES (?, ?, ?, ?)",
                        (session.id, position, message.role, message.content),
                    )
        logger.info(
            "Session saved",
            extra={"session_id": session.id, "sequence": len(session.messages)},
        )

    def session_load(self, session_id: str) -> Session:
        """Load a saved session with its messages and audit references.

        Raises:
            SessionNotFoundError: If no session has this id.
        """
        rows = self._conn.execute("SELECT id, created_at FROM sessions WHERE id = ?", (session_id,))
        if not rows:
            raise SessionNotFoundError(session_id)
        messages = self._conn.execute(
            "SELECT role, content FROM messages WHERE session_id = ? ORDER BY position",
            (session_id,),
        )
        sequences = self._conn.execute(
            "SELECT sequence FROM audit_entries WHERE session_id = ? ORDER BY sequence",
            (session_id,),
        )
        return Session(
            id=rows[0]["id"],
            created_at=datetime.fromisoformat(rows[0]["created_at"]),
            messages=[Message(role=m["role"], content=m["content"]) for m in messages],
            audit_sequence=[s["sequence"] for s in sequences],
        )

    def latest_session_id(self) -> str | None:
        rows = self._conn.execute("SELECT id FROM sessions ORDER BY updated_at DESC LIMIT 1")
        return rows[0]["id"] if rows else None

    def list_sessions(self) -> list[dict]:
        """Saved sessions, most recently updated first, with message and entry counts."""
        return self._conn.execute("""
            SELECT s.id, s.created_at, s.updated_at,
                   (SELECT COUNT(*) FROM messages m WHERE m.session_id = s.id) AS message_count,
                   (SELECT COUNT(*) FROM audit_entries a WHERE a.session_id = s.id) AS entry_count
            FROM sessions s
            ORDER BY s.updated_at DESC
        """)

    def export_session(self, session_id: str, fmt: str = "txt") -> str:
        """Render a session (messages and audit trail) as ``txt`` or ``json``.

        Raises:
            SessionNotFoundError: If no session has this id.
            ValueError: For an unknown format.
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unknown export format '{fmt}' (expected one of {', '.join(EXPORT_FORMATS)})")
        session = self.session_load(session_id)
        entries = self.entries(session_id)

        if fmt == "json":
            return json.dumps(
                {
                    "session": session.model_dump(mode="json"),
                    "audit": [e.model_dump(mode="json") for e in entries],
                },
                indent=2,
            )

        lines = [f"Session {session.id} (created {session.created_at.isoformat()})", ""]
        lines.extend(f"{m.role}: {m.content}" for m in session.messages)
        if entries:
            lines += ["", "Audit trail:"]
            lines.extend(
                f"#{e.sequence} [{e.result.status.value}] {e.operation.text} "
                f"(approval={e.approval_label}, exit={e.result.exit_code}, {e.result.duration_ms:.0f}ms)"
                for e in entries
            )
        return "\n".join(lines) + "\n"

    @property
    def connection(self) -> DbConnection:
        """The underlying connection, shared with the todo list."""
        return self._conn

    def close(self) -> None:
        self._conn.close()
