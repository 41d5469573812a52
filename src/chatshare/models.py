"""Summary: Domain model dataclasses for ChatShare.

Importance: Defines the core entities shared across services and storage.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any

DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 50
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)


def new_id() -> str:
    """Summary: Generate an opaque identifier.

    Importance: Keeps ids unguessable and independent of storage order.
    Alternatives: Use database autoincrement integers.
    """

    return secrets.token_hex(10)


def now_ms() -> int:
    return int(time.time() * 1000)


def make_title(text: str) -> str:
    """Summary: Derive a conversation title from the first user message.

    Importance: Gives conversation lists a readable label.
    Alternatives: Ask the AI provider to summarize a title.
    """

    if not text:
        return DEFAULT_TITLE
    if len(text) > TITLE_MAX_LENGTH:
        return text[: TITLE_MAX_LENGTH - 3] + "..."
    return text


@dataclass(frozen=True)
class Message:
    """Summary: A single chat message.

    Importance: Messages are immutable and only ever appended to a conversation.
    Alternatives: Store messages as loose dicts inside the conversation.
    """

    id: str
    content: str
    role: str
    timestamp: int

    @staticmethod
    def create(content: str, role: str, not_before: int = 0) -> "Message":
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        return Message(
            id=new_id(), content=content, role=role, timestamp=max(now_ms(), not_before)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "role": self.role,
            "timestamp": self.timestamp,
        }

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "Message":
        return Message(
            id=str(raw["id"]),
            content=str(raw.get("content", "")),
            role=str(raw.get("role", ROLE_ASSISTANT)),
            timestamp=int(raw.get("timestamp", 0)),
        )


@dataclass(frozen=True)
class Conversation:
    """Summary: A titled, ordered transcript owned by one user.

    Importance: Central document for chat persistence and listing.
    Alternatives: Store one row per message and derive conversations by query.
    """

    id: str
    title: str
    messages: tuple[Message, ...]
    created_at: int
    updated_at: int
    owner_id: str
    version: int = 0

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


@dataclass(frozen=True)
class SharedMessageRecord:
    """Summary: An assistant reply forwarded to another user's inbox.

    Importance: Append-only record keyed by recipient email.
    Alternatives: Copy the message into the recipient's conversations.
    """

    id: str
    content: str
    sender_email: str
    recipient_email: str
    sender_id: str
    timestamp: int


@dataclass(frozen=True)
class User:
    """Summary: Represents a user profile before it is stored.

    Importance: Provides ownership and email lookup for sharing.
    Alternatives: Delegate identity to an external provider only.
    """

    display_name: str
    email: str


@dataclass(frozen=True)
class ListResult:
    """Summary: Outcome of a listing that may degrade silently.

    Importance: Distinguishes "no data" from "lookup failed" for callers that care.
    Alternatives: Return an empty list for both cases.
    """

    items: list[Any] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_empty(self) -> bool:
        return not self.items


@dataclass(frozen=True)
class TurnResult:
    """Summary: Result of one user turn through the chat orchestrator.

    Importance: Returns the persisted messages so clients can render without re-fetching.
    Alternatives: Return only the conversation id.
    """

    conversation_id: str
    user_message: Message
    assistant_message: Message
    title: str
    ai_failed: bool = False
