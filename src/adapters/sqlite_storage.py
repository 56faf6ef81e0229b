"""SQLite storage adapter.

Implements the core DedupStorePort and PreferencesPort using a simple SQLite
database. Every operation runs in its own short transaction.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from core.errors import StorageFailure
from core.models import DedupRecord, UserPreferences

LOGGER = logging.getLogger(__name__)


def _iso(value: datetime) -> str:
    # Fixed-width UTC timestamps compare correctly as strings.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the storage port contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise StorageFailure(f"cannot open {self._db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - sent_messages: one row per delivered message id, for dedup
        - user_preferences: per-source-user notification switches
        """

        with self._connect() as conn:
            # sent_messages proves a message already went out. Rows are only
            # written after a confirmed send and expire after the retention
            # window.
            # Fields:
            # - message_id: provider message-level id (PRIMARY KEY)
            # - sent_at: UTC ISO timestamp of the confirmed send
            # - conversation_id: provider conversation id, metadata only
            # - notification_kind: new-thread / new-message / system
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sent_messages (
                    message_id TEXT PRIMARY KEY,
                    sent_at TIMESTAMP NOT NULL,
                    conversation_id TEXT,
                    notification_kind TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sent_messages_sent_at ON sent_messages(sent_at)"
            )
            # user_preferences lets a source user mute a class of
            # notifications. A missing row means "notify".
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_preferences (
                    user_id TEXT PRIMARY KEY,
                    show_new_messages INTEGER NOT NULL DEFAULT 1,
                    show_new_conversations INTEGER NOT NULL DEFAULT 1,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )
        LOGGER.info("Storage initialized at %s", self._db_path)

    def has_delivered(self, message_id: str) -> bool:
        """Check if a message id has already been delivered."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM sent_messages WHERE message_id = ?",
                (message_id,),
            ).fetchone()
        return row is not None

    def mark_delivered(
        self,
        message_id: str,
        conversation_id: Optional[str],
        notification_kind: str,
        sent_at: Optional[datetime] = None,
    ) -> None:
        """Upsert the delivery record for a message id."""

        sent_at = sent_at or datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO sent_messages (message_id, sent_at, conversation_id, notification_kind)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(message_id) DO UPDATE SET
                    sent_at = excluded.sent_at,
                    conversation_id = excluded.conversation_id,
                    notification_kind = excluded.notification_kind
                """,
                (message_id, _iso(sent_at), conversation_id, notification_kind),
            )

    def sweep_expired(self, retention: timedelta) -> int:
        """Delete delivery records older than the retention window."""

        cutoff = datetime.now(timezone.utc) - retention
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM sent_messages WHERE sent_at < ?",
                (_iso(cutoff),),
            )
            return cur.rowcount

    def recent_records(self, limit: int = 3) -> list[DedupRecord]:
        """Return the most recently delivered records, newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT message_id, sent_at, conversation_id, notification_kind
                FROM sent_messages
                ORDER BY sent_at DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            DedupRecord(
                message_id=row["message_id"],
                sent_at=datetime.fromisoformat(row["sent_at"]),
                conversation_id=row["conversation_id"],
                notification_kind=row["notification_kind"],
            )
            for row in rows
        ]

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        """Return stored preferences for a source user, if any."""

        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT show_new_messages, show_new_conversations
                FROM user_preferences WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return UserPreferences(
            user_id=user_id,
            show_new_messages=bool(row["show_new_messages"]),
            show_new_conversations=bool(row["show_new_conversations"]),
        )

    def update_preferences(
        self,
        user_id: str,
        show_new_messages: Optional[bool] = None,
        show_new_conversations: Optional[bool] = None,
    ) -> UserPreferences:
        """Merge the given switches into the stored preferences."""

        current = self.get_preferences(user_id) or UserPreferences(user_id=user_id)
        updated = UserPreferences(
            user_id=user_id,
            show_new_messages=current.show_new_messages if show_new_messages is None else show_new_messages,
            show_new_conversations=(
                current.show_new_conversations if show_new_conversations is None else show_new_conversations
            ),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_preferences (user_id, show_new_messages, show_new_conversations, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    show_new_messages = excluded.show_new_messages,
                    show_new_conversations = excluded.show_new_conversations,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    int(updated.show_new_messages),
                    int(updated.show_new_conversations),
                    _iso(datetime.now(timezone.utc)),
                ),
            )
        return updated

    def clear(self) -> int:
        """Delete all delivery records and preferences; return rows removed."""

        with self._connect() as conn:
            removed = conn.execute("DELETE FROM sent_messages").rowcount
            removed += conn.execute("DELETE FROM user_preferences").rowcount
        return removed
