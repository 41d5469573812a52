"""Summary: Tests for SQLite storage layer.

Importance: Ensures documents round-trip and conditional writes behave as expected.
Alternatives: Rely on manual testing for storage operations.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from chatshare.errors import PersistenceError
from chatshare.models import Conversation, Message, SharedMessageRecord, User
from chatshare.storage.sqlite_store import SqliteStore


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    return store


def _conversation(conversation_id: str, owner_id: str, updated_at: int) -> Conversation:
    return Conversation(
        id=conversation_id,
        title="New Chat",
        messages=(),
        created_at=updated_at,
        updated_at=updated_at,
        owner_id=owner_id,
    )


def test_store_persists_conversation_messages(tmp_path: Path) -> None:
    """Summary: Verify conversations and their messages are saved and loaded.

    Importance: Message order inside the document must survive storage.
    Alternatives: Store messages in a separate table.
    """

    store = _store(tmp_path)
    store.insert_conversation(_conversation("c1", "owner", 100))
    stored = store.get_conversation("c1")
    first = Message(id="m1", content="Hi", role="user", timestamp=101)
    second = Message(id="m2", content="Hello", role="assistant", timestamp=102)
    updated = Conversation(
        id=stored.id,
        title="Hi",
        messages=(first, second),
        created_at=stored.created_at,
        updated_at=102,
        owner_id=stored.owner_id,
    )
    assert store.update_conversation(updated, expected_version=stored.version) is True
    loaded = store.get_conversation("c1")
    assert [message.id for message in loaded.messages] == ["m1", "m2"]
    assert loaded.title == "Hi"
    assert loaded.version == 1
    assert store.get_conversation("missing") is None


def test_store_rejects_stale_conditional_write(tmp_path: Path) -> None:
    """Summary: Verify a write based on an outdated read is rejected.

    Importance: Prevents one writer from silently clobbering another's messages.
    Alternatives: Last-writer-wins on the whole message array.
    """

    store = _store(tmp_path)
    store.insert_conversation(_conversation("c1", "owner", 100))
    snapshot = store.get_conversation("c1")
    assert store.update_conversation(snapshot, expected_version=snapshot.version) is True
    assert store.update_conversation(snapshot, expected_version=snapshot.version) is False


def test_store_lists_conversations_by_recency(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.insert_conversation(_conversation("old", "owner", 100))
    store.insert_conversation(_conversation("newest", "owner", 300))
    store.insert_conversation(_conversation("middle", "owner", 200))
    store.insert_conversation(_conversation("other", "someone-else", 400))
    ids = [conversation.id for conversation in store.list_conversations("owner")]
    assert ids == ["newest", "middle", "old"]


def test_store_shared_messages_by_recipient(tmp_path: Path) -> None:
    store = _store(tmp_path)
    for index, recipient in enumerate(["a@example.com", "b@example.com", "a@example.com"]):
        store.insert_shared_message(
            SharedMessageRecord(
                id=f"s{index}",
                content=f"content {index}",
                sender_email="sender@example.com",
                recipient_email=recipient,
                sender_id="sender",
                timestamp=100 + index,
            )
        )
    records = store.list_shared_messages("a@example.com")
    assert [record.id for record in records] == ["s2", "s0"]


def test_store_users(tmp_path: Path) -> None:
    """Summary: Verify users are created once per email.

    Importance: Email is the sharing key, so it must be unique.
    Alternatives: Allow duplicate emails and pick the first.
    """

    store = _store(tmp_path)
    user_id = store.ensure_user(User(display_name="Ada", email="ada@example.com"))
    assert store.ensure_user(User(display_name="Ada L", email="ada@example.com")) == user_id
    assert store.get_user(user_id).email == "ada@example.com"
    assert store.get_user_by_email("ada@example.com").id == user_id
    assert store.get_user("missing") is None


def test_store_wraps_sqlite_errors(tmp_path: Path) -> None:
    store = SqliteStore(str(tmp_path / "uninitialized.db"))
    with pytest.raises(PersistenceError):
        store.get_conversation("c1")


def test_store_ensure_user_returns_existing_row(tmp_path: Path) -> None:
    """Summary: Verify ensure_user reuses a row written by another process.

    Importance: A duplicate email must resolve to the stored ID, not an integrity error.
    Alternatives: Check for the email before inserting.
    """

    store = _store(tmp_path)
    connection = sqlite3.connect(tmp_path / "test.db")
    connection.execute(
        "INSERT INTO users (id, display_name, email) VALUES (?, ?, ?)",
        ("existing", "Ada", "ada@example.com"),
    )
    connection.commit()
    connection.close()
    assert store.ensure_user(User(display_name="Ada L", email="ada@example.com")) == "existing"
    assert len(store.list_users()) == 1
