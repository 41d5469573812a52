"""Summary: SQLite storage implementation for ChatShare.

Importance: Provides a local document-style persistence layer for conversations and shares.
Alternatives: Use a hosted document database or an ORM.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from chatshare.errors import PersistenceError
from chatshare.models import Conversation, Message, SharedMessageRecord, User, new_id


@dataclass(frozen=True)
class StoredUser:
    """Summary: User record with database identifier.

    Importance: Owns conversations and resolves emails for sharing.
    Alternatives: Keep only a single implicit user without records.
    """

    id: str
    display_name: str
    email: str


@dataclass(frozen=True)
class StoredApiKey:
    """Summary: API key record with hashed token.

    Importance: Lets users authenticate without storing raw tokens.
    Alternatives: Store plaintext keys in the database.
    """

    id: int
    user_id: str
    token_hash: str
    label: str | None
    created_at: str


_CONVERSATION_COLUMNS = "id, title, messages, created_at, updated_at, owner_id, version"
_SHARED_COLUMNS = "id, content, sender_email, recipient_email, sender_id, timestamp"


class SqliteStore:
    """Summary: SQLite-backed storage for ChatShare.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready for chat and sharing workflows.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS api_keys (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    token_hash TEXT NOT NULL UNIQUE,
                    label TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    messages TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL,
                    owner_id TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_conversations_owner
                ON conversations (owner_id, updated_at DESC)
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS shared_messages (
                    id TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    sender_email TEXT NOT NULL,
                    recipient_email TEXT NOT NULL,
                    sender_id TEXT NOT NULL,
                    timestamp INTEGER NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_shared_messages_recipient
                ON shared_messages (recipient_email, timestamp DESC)
                """
            )
            connection.commit()

    def ensure_user(self, user: User) -> str:
        """Summary: Ensure a user exists and return their ID.

        Importance: Provides a stable user record for data ownership.
        Alternatives: Omit user records in single-user mode.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO users (id, display_name, email) VALUES (?, ?, ?)
                ON CONFLICT(email) DO NOTHING
                """,
                (new_id(), user.display_name, user.email),
            )
            connection.commit()
            cursor.execute("SELECT id FROM users WHERE email = ?", (user.email,))
            row = cursor.fetchone()
        return str(row[0])

    def get_user(self, user_id: str) -> StoredUser | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT id, display_name, email FROM users WHERE id = ?", (user_id,))
            row = cursor.fetchone()
        return StoredUser(*row) if row else None

    def get_user_by_email(self, email: str) -> StoredUser | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT id, display_name, email FROM users WHERE email = ?", (email,))
            row = cursor.fetchone()
        return StoredUser(*row) if row else None

    def list_users(self) -> list[StoredUser]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT id, display_name, email FROM users ORDER BY email")
            rows = cursor.fetchall()
        return [StoredUser(*row) for row in rows]

    def create_api_key(
        self, user_id: str, token_hash: str, label: str | None, created_at: str
    ) -> int:
        """Summary: Persist a hashed API key for a user.

        Importance: Backs per-user API authentication.
        Alternatives: Use an external identity provider.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO api_keys (user_id, token_hash, label, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, token_hash, label, created_at),
            )
            key_id = cursor.lastrowid
            connection.commit()
        return int(key_id)

    def get_user_id_by_api_key(self, token_hash: str) -> str | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT user_id FROM api_keys WHERE token_hash = ?", (token_hash,))
            row = cursor.fetchone()
        return str(row[0]) if row else None

    def list_api_keys(self, user_id: str) -> list[StoredApiKey]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, user_id, token_hash, label, created_at
                FROM api_keys
                WHERE user_id = ?
                ORDER BY id DESC
                """,
                (user_id,),
            )
            rows = cursor.fetchall()
        return [StoredApiKey(*row) for row in rows]

    def delete_api_key(self, user_id: str, key_id: int) -> bool:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "DELETE FROM api_keys WHERE id = ? AND user_id = ?", (key_id, user_id)
            )
            deleted = cursor.rowcount > 0
            connection.commit()
        return deleted

    def insert_conversation(self, conversation: Conversation) -> None:
        """Summary: Persist a new conversation document.

        Importance: Conversations are created before their first message is appended.
        Alternatives: Create conversations lazily on first message.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"INSERT INTO conversations ({_CONVERSATION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.title,
                    _dump_messages(conversation.messages),
                    conversation.created_at,
                    conversation.updated_at,
                    conversation.owner_id,
                    conversation.version,
                ),
            )
            connection.commit()

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = ?",
                (conversation_id,),
            )
            row = cursor.fetchone()
        return _row_to_conversation(row) if row else None

    def list_conversations(self, owner_id: str) -> list[Conversation]:
        """Summary: List an owner's conversations, most recently active first.

        Importance: Powers the conversation sidebar.
        Alternatives: Sort in Python after loading every document.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                SELECT {_CONVERSATION_COLUMNS}
                FROM conversations
                WHERE owner_id = ?
                ORDER BY updated_at DESC
                """,
                (owner_id,),
            )
            rows = cursor.fetchall()
        return [_row_to_conversation(row) for row in rows]

    def update_conversation(self, conversation: Conversation, expected_version: int) -> bool:
        """Summary: Overwrite a conversation only if nobody wrote it since it was read.

        Importance: Turns read-modify-write into a conditional write so appends are not lost.
        Alternatives: Store one row per message and append with plain inserts.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                UPDATE conversations
                SET title = ?, messages = ?, updated_at = ?, version = ?
                WHERE id = ? AND version = ?
                """,
                (
                    conversation.title,
                    _dump_messages(conversation.messages),
                    conversation.updated_at,
                    expected_version + 1,
                    conversation.id,
                    expected_version,
                ),
            )
            updated = cursor.rowcount == 1
            connection.commit()
        return updated

    def insert_shared_message(self, record: SharedMessageRecord) -> None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"INSERT INTO shared_messages ({_SHARED_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.content,
                    record.sender_email,
                    record.recipient_email,
                    record.sender_id,
                    record.timestamp,
                ),
            )
            connection.commit()

    def list_shared_messages(self, recipient_email: str) -> list[SharedMessageRecord]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                SELECT {_SHARED_COLUMNS}
                FROM shared_messages
                WHERE recipient_email = ?
                ORDER BY timestamp DESC
                """,
                (recipient_email,),
            )
            rows = cursor.fetchall()
        return [SharedMessageRecord(*row) for row in rows]

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Closes connections cleanly and reports sqlite failures as PersistenceError.
        Alternatives: Keep a single long-lived connection.
        """

        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not open database {self._db_path}: {exc}") from exc
        try:
            yield connection
        except sqlite3.Error as exc:
            raise PersistenceError(f"Database operation failed: {exc}") from exc
        finally:
            connection.close()


def _dump_messages(messages: tuple[Message, ...]) -> str:
    return json.dumps([message.to_dict() for message in messages])


def _row_to_conversation(row: tuple) -> Conversation:
    conversation_id, title, raw_messages, created_at, updated_at, owner_id, version = row
    try:
        return Conversation(
            id=str(conversation_id),
            title=title or "New Chat",
            messages=tuple(
                Message.from_dict(item) for item in json.loads(raw_messages or "[]")
            ),
            created_at=int(created_at),
            updated_at=int(updated_at),
            owner_id=str(owner_id),
            version=int(version),
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise PersistenceError(f"Corrupt conversation row {conversation_id}") from exc
