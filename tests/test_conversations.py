"""Summary: Tests for the conversation service.

Importance: Covers creation, lookups, recency ordering, and safe appends.
Alternatives: Test only through the chat orchestrator.
"""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from pathlib import Path
from typing import Callable

import pytest

from chatshare.errors import ConflictError, NotFoundError, PersistenceError
from chatshare.models import Conversation, Message
from chatshare.services import ConversationService
from chatshare.storage.sqlite_store import SqliteStore


class InterleavingStore(SqliteStore):
    """Summary: Store that runs a hook right after the next conversation read.

    Importance: Simulates another writer landing between a read and its write.
    Alternatives: Use threads and hope for the right interleaving.
    """

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path)
        self.after_read: Callable[[], None] | None = None

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = super().get_conversation(conversation_id)
        hook, self.after_read = self.after_read, None
        if hook:
            hook()
        return conversation


class BrokenStore(SqliteStore):
    def get_conversation(self, conversation_id: str) -> Conversation | None:
        raise PersistenceError("disk unavailable")

    def list_conversations(self, owner_id: str) -> list[Conversation]:
        raise PersistenceError("disk unavailable")


def _service(tmp_path: Path, store_class: type[SqliteStore] = SqliteStore) -> ConversationService:
    store = store_class(str(tmp_path / "test.db"))
    store.initialize()
    return ConversationService(store=store)


def test_create_starts_empty(tmp_path: Path) -> None:
    """Summary: Verify new conversations start empty with the default title.

    Importance: Title derivation depends on the empty starting state.
    Alternatives: Create conversations with a placeholder message.
    """

    service = _service(tmp_path)
    conversation_id = service.create("owner")
    conversation = service.get(conversation_id)
    assert conversation.title == "New Chat"
    assert conversation.messages == ()
    assert conversation.created_at == conversation.updated_at
    assert conversation.owner_id == "owner"


def test_get_and_fetch_missing(tmp_path: Path) -> None:
    service = _service(tmp_path)
    assert service.get("missing") is None
    with pytest.raises(NotFoundError):
        service.fetch("missing")


def test_fetch_hides_other_owners(tmp_path: Path) -> None:
    service = _service(tmp_path)
    conversation_id = service.create("owner")
    assert service.fetch(conversation_id, owner_id="owner").id == conversation_id
    with pytest.raises(NotFoundError):
        service.fetch(conversation_id, owner_id="intruder")


def test_lookups_degrade_on_store_failure(tmp_path: Path) -> None:
    """Summary: Verify get and list degrade silently while fetch raises.

    Importance: Rendering paths show nothing; strict paths report the failure.
    Alternatives: Raise from every lookup.
    """

    service = _service(tmp_path, BrokenStore)
    assert service.get("any") is None
    assert service.list_by_owner("owner") == []
    result = service.list_by_owner_result("owner")
    assert result.ok is False
    assert "disk unavailable" in result.error
    with pytest.raises(PersistenceError):
        service.fetch("any")


def test_list_by_owner_orders_by_updated_at(tmp_path: Path) -> None:
    """Summary: Verify listing is sorted by updated_at descending.

    Importance: Most recently active conversations appear first.
    Alternatives: Sort by creation time.
    """

    service = _service(tmp_path)
    ids = {}
    for updated_at in (100, 300, 200):
        conversation_id = service.create("owner")
        current = service.store.get_conversation(conversation_id)
        service.store.update_conversation(
            replace(current, updated_at=updated_at), expected_version=current.version
        )
        ids[updated_at] = conversation_id
    listed = [conversation.id for conversation in service.list_by_owner("owner")]
    assert listed == [ids[300], ids[200], ids[100]]
    assert service.list_by_owner_result("nobody").ok is True
    assert service.list_by_owner_result("nobody").is_empty


def test_append_preserves_order_and_retitles(tmp_path: Path) -> None:
    service = _service(tmp_path)
    conversation_id = service.create("owner")
    before = service.get(conversation_id)
    first = Message.create("one", "user")
    second = Message.create("two", "assistant")
    service.append_messages(conversation_id, [first])
    updated = service.append_messages(conversation_id, [second], title="Renamed")
    assert [message.content for message in updated.messages] == ["one", "two"]
    assert updated.title == "Renamed"
    assert updated.updated_at >= before.updated_at
    assert service.get(conversation_id) == updated


def test_append_to_missing_conversation(tmp_path: Path) -> None:
    service = _service(tmp_path)
    with pytest.raises(NotFoundError):
        service.append_messages("missing", [Message.create("hi", "user")])


def test_interleaved_appends_keep_both_messages(tmp_path: Path) -> None:
    """Summary: Verify a concurrent append between read and write is not lost.

    Importance: Whole-array overwrites would drop one of the two messages.
    Alternatives: Document lost updates as accepted behavior.
    """

    service = _service(tmp_path, InterleavingStore)
    conversation_id = service.create("owner")
    ours = Message.create("ours", "user")
    theirs = Message.create("theirs", "user")
    service.store.after_read = lambda: service.append_messages(conversation_id, [theirs])
    service.append_messages(conversation_id, [ours])
    contents = [message.content for message in service.get(conversation_id).messages]
    assert sorted(contents) == ["ours", "theirs"]
    assert contents == ["theirs", "ours"]


def test_append_gives_up_after_repeated_conflicts(tmp_path: Path) -> None:
    store = InterleavingStore(str(tmp_path / "test.db"))
    store.initialize()
    service = ConversationService(store=store, append_attempts=2)
    conversation_id = service.create("owner")

    def competing_write() -> None:
        current = SqliteStore.get_conversation(store, conversation_id)
        store.update_conversation(current, expected_version=current.version)
        store.after_read = competing_write

    store.after_read = competing_write
    with pytest.raises(ConflictError):
        service.append_messages(conversation_id, [Message.create("lost", "user")])


def test_corrupt_row_reported_as_persistence_error(tmp_path: Path) -> None:
    """Summary: Verify unreadable conversation rows never escape as ValueError.

    Importance: get() must stay non-throwing even on damaged data.
    Alternatives: Validate rows with a schema library.
    """

    service = _service(tmp_path)
    connection = sqlite3.connect(tmp_path / "test.db")
    connection.execute(
        """
        INSERT INTO conversations (id, title, messages, created_at, updated_at, owner_id, version)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        ("broken", "Broken", "[]", "yesterday", 100, "owner", 0),
    )
    connection.commit()
    connection.close()
    assert service.get("broken") is None
    with pytest.raises(PersistenceError):
        service.fetch("broken")
    assert service.list_by_owner("owner") == []
