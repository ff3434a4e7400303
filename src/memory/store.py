"""
Durable SQLite store for Reco.

Holds users, the append-only credit ledger, and an advisory mirror of
conversation messages. The store is optional: without it the ledger runs
against in-process maps and the conversation mirror is skipped.

All methods are synchronous; async callers go through asyncio.to_thread.
"""

from __future__ import annotations

import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any

from src.billing.models import LedgerEntry, User
from src.constants import MEMORY_DB
from src.memory.schema import SCHEMA_SQL
from src.utils.logging import get_logger

logger = get_logger("memory_store")


class MemoryStore:
    """
    SQLite store for users, ledger entries and mirrored messages.

    Ledger writes that must stay consistent with the cached balance
    (balance update + entry insert) run in one transaction.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or MEMORY_DB
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def open(self) -> None:
        """Open the database connection and initialize schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()
        logger.info("memory_store_ready", path=str(self.db_path))

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("memory_store_closed")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise MemoryStoreError("Store not opened. Call open() first.")
        return self._conn

    # --- Users ---

    def get_user_by_key(self, user_key: str) -> User | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM users WHERE user_key = ?", (user_key,)
            ).fetchone()
        return _row_to_user(row) if row else None

    def get_user_by_id(self, user_id: str) -> User | None:
        with self._lock:
            row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

    def save_user(self, user: User) -> None:
        """Insert or update a user row."""
        with self._lock:
            self.conn.execute(
                "INSERT INTO users (id, user_key, credits_minor, message_count, lang, is_blocked, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET credits_minor = excluded.credits_minor, "
                "message_count = excluded.message_count, lang = excluded.lang, "
                "is_blocked = excluded.is_blocked",
                (
                    user.id,
                    user.user_key,
                    user.credits_minor,
                    user.message_count,
                    user.lang,
                    int(user.is_blocked),
                    user.created_at,
                ),
            )
            self.conn.commit()

    def save_user_with_entry(self, user: User, entry: LedgerEntry) -> None:
        """Persist a balance change and its ledger entry atomically."""
        with self._lock:
            try:
                self.conn.execute(
                    "INSERT INTO users (id, user_key, credits_minor, message_count, lang, is_blocked, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET credits_minor = excluded.credits_minor, "
                    "message_count = excluded.message_count",
                    (
                        user.id,
                        user.user_key,
                        user.credits_minor,
                        user.message_count,
                        user.lang,
                        int(user.is_blocked),
                        user.created_at,
                    ),
                )
                self.conn.execute(
                    "INSERT INTO credit_ledger (id, user_id, delta_minor, reason, ref_id, timestamp) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        entry.id,
                        entry.user_id,
                        entry.delta_minor,
                        entry.reason,
                        entry.ref_id,
                        entry.timestamp,
                    ),
                )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise

    def delete_user(self, user_id: str) -> bool:
        """Delete a user; ledger rows and mirrored conversations go with it."""
        with self._lock:
            row = self.conn.execute(
                "SELECT user_key FROM users WHERE id = ?", (user_id,)
            ).fetchone()
            if row is None:
                return False
            self.conn.execute("DELETE FROM conversations WHERE user_key = ?", (row["user_key"],))
            self.conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            self.conn.commit()
            return True

    # --- Ledger ---

    def list_ledger_entries(self, user_id: str) -> list[LedgerEntry]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM credit_ledger WHERE user_id = ? ORDER BY timestamp ASC, rowid ASC",
                (user_id,),
            ).fetchall()
        return [
            LedgerEntry(
                id=r["id"],
                user_id=r["user_id"],
                delta_minor=int(r["delta_minor"]),
                reason=r["reason"],
                ref_id=r["ref_id"],
                timestamp=r["timestamp"],
            )
            for r in rows
        ]

    def get_ledger_sum(self, user_id: str) -> int:
        with self._lock:
            row = self.conn.execute(
                "SELECT COALESCE(SUM(delta_minor), 0) AS total FROM credit_ledger WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(row["total"]) if row else 0

    # --- Conversation mirror ---

    def mirror_message(self, user_key: str, role: str, content: str, timestamp: str) -> str:
        """Append a message to the user's open mirrored conversation."""
        with self._lock:
            row = self.conn.execute(
                "SELECT id FROM conversations WHERE user_key = ? "
                "ORDER BY last_activity DESC LIMIT 1",
                (user_key,),
            ).fetchone()
            if row is None:
                conv_id = _new_id()
                self.conn.execute(
                    "INSERT INTO conversations (id, user_key, started_at, last_activity) "
                    "VALUES (?, ?, ?, ?)",
                    (conv_id, user_key, timestamp, timestamp),
                )
            else:
                conv_id = row["id"]
                self.conn.execute(
                    "UPDATE conversations SET last_activity = ? WHERE id = ?",
                    (timestamp, conv_id),
                )
            msg_id = _new_id()
            self.conn.execute(
                "INSERT INTO messages (id, conversation_id, role, content, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (msg_id, conv_id, role, content, timestamp),
            )
            self.conn.commit()
            return msg_id

    def delete_conversations(self, user_key: str) -> None:
        with self._lock:
            self.conn.execute("DELETE FROM conversations WHERE user_key = ?", (user_key,))
            self.conn.commit()

    def get_mirrored_messages(self, user_key: str, limit: int = 50) -> list[dict[str, Any]]:
        """Mirrored messages for a user, oldest first. Diagnostics only."""
        rows = self.conn.execute(
            "SELECT m.role, m.content, m.timestamp FROM messages m "
            "JOIN conversations c ON c.id = m.conversation_id "
            "WHERE c.user_key = ? ORDER BY m.timestamp ASC, m.rowid ASC LIMIT ?",
            (user_key, limit),
        ).fetchall()
        return [dict(r) for r in rows]

    # --- Maintenance ---

    def get_schema_version(self) -> int:
        """Get current schema version."""
        try:
            row = self.conn.execute("SELECT MAX(version) as v FROM schema_version").fetchone()
            return int(row["v"]) if row else 0
        except sqlite3.OperationalError:
            return 0

    def get_stats(self) -> dict[str, int]:
        """Get row counts per table."""
        stats = {}
        for table in ["users", "credit_ledger", "conversations", "messages"]:
            row = self.conn.execute(f"SELECT COUNT(*) as c FROM {table}").fetchone()
            stats[table] = int(row["c"]) if row else 0
        return stats


class MemoryStoreError(Exception):
    """Raised for memory store errors."""

    pass


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        user_key=row["user_key"],
        credits_minor=int(row["credits_minor"]),
        message_count=int(row["message_count"]),
        lang=row["lang"],
        is_blocked=bool(row["is_blocked"]),
        created_at=row["created_at"],
    )


def _new_id() -> str:
    """Generate a new unique ID."""
    return str(uuid.uuid4())
