"""Summary: Core application services for ChatShare.

Importance: Orchestrates conversation persistence, AI replies, and message sharing.
Alternatives: Build a full service layer with dependency injection framework.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import hashlib
import logging
import re
import secrets
from datetime import datetime, timezone

from chatshare.ai import AiResponder
from chatshare.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from chatshare.models import (
    DEFAULT_TITLE,
    ROLE_ASSISTANT,
    ROLE_USER,
    Conversation,
    ListResult,
    Message,
    SharedMessageRecord,
    TurnResult,
    User,
    make_title,
    new_id,
    now_ms,
)
from chatshare.storage.sqlite_store import SqliteStore, StoredApiKey, StoredUser


logger = logging.getLogger(__name__)

ERROR_REPLY = "Sorry, I encountered an error while processing your request."
USER_NOT_FOUND = "User not found"
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class UserService:
    """Summary: Manages user records and email lookup.

    Importance: Acts as the identity collaborator for ownership and sharing.
    Alternatives: Use an external identity provider.
    """

    store: SqliteStore

    def create_user(self, display_name: str, email: str) -> str:
        """Summary: Create or ensure a user exists.

        Importance: Registers a user so others can share messages to their email.
        Alternatives: Create users implicitly on first API call.
        """

        normalized = normalize_email(email)
        if not _EMAIL_PATTERN.match(normalized):
            raise ValidationError("Please enter a valid email address")
        user_id = self.store.ensure_user(
            User(display_name=display_name.strip() or normalized, email=normalized)
        )
        logger.info("Ensured user %s.", user_id)
        return user_id

    def list_users(self) -> list[StoredUser]:
        return self.store.list_users()

    def get_user_by_email(self, email: str) -> StoredUser | None:
        return self.store.get_user_by_email(normalize_email(email))

    def get_email(self, user_id: str) -> str:
        """Summary: Resolve a user's email address.

        Importance: Sharing is keyed by email, so a missing email is a distinct failure.
        Alternatives: Key shares by user ID instead of email.
        """

        user = self.store.get_user(user_id)
        if user is None or not user.email:
            raise NotFoundError(USER_NOT_FOUND)
        return user.email


@dataclass(frozen=True)
class ApiKeyService:
    """Summary: Issues and verifies API keys for users.

    Importance: Enables per-user API authentication tokens.
    Alternatives: Use OAuth or an external auth service.
    """

    store: SqliteStore
    token_secret: str

    def create_api_key(self, user_id: str, label: str | None = None) -> tuple[int, str]:
        """Summary: Create a new API key for a user.

        Importance: Returns a one-time plaintext token for client storage.
        Alternatives: Store raw tokens in the database.
        """

        if self.store.get_user(user_id) is None:
            raise NotFoundError(USER_NOT_FOUND)
        raw_token = secrets.token_urlsafe(32)
        key_id = self.store.create_api_key(
            user_id=user_id,
            token_hash=self._hash_token(raw_token),
            label=label,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info("Issued API key %s for user %s.", key_id, user_id)
        return key_id, raw_token

    def revoke_api_key(self, user_id: str, key_id: int) -> bool:
        return self.store.delete_api_key(user_id, key_id)

    def list_api_keys(self, user_id: str) -> list[StoredApiKey]:
        return self.store.list_api_keys(user_id)

    def resolve_user_id(self, token: str) -> str | None:
        """Summary: Resolve a user ID from an API key.

        Importance: Supports per-user API authentication.
        Alternatives: Validate tokens with an external service.
        """

        return self.store.get_user_id_by_api_key(self._hash_token(token))

    def _hash_token(self, token: str) -> str:
        salt = self.token_secret or "chatshare"
        return hashlib.sha256(f"{salt}:{token}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ConversationService:
    """Summary: CRUD over conversation documents.

    Importance: Owns the read-modify-write of message transcripts.
    Alternatives: Let the orchestrator talk to storage directly.
    """

    store: SqliteStore
    append_attempts: int = 3

    def create(self, owner_id: str) -> str:
        """Summary: Persist an empty conversation titled "New Chat".

        Importance: Gives a new chat a stable ID before the first message.
        Alternatives: Create the conversation together with the first message.
        """

        timestamp = now_ms()
        conversation = Conversation(
            id=new_id(),
            title=DEFAULT_TITLE,
            messages=(),
            created_at=timestamp,
            updated_at=timestamp,
            owner_id=owner_id,
        )
        self.store.insert_conversation(conversation)
        logger.info("Created conversation %s for user %s.", conversation.id, owner_id)
        return conversation.id

    def get(self, conversation_id: str) -> Conversation | None:
        """Summary: Fetch a conversation, returning None on any miss.

        Importance: Lenient lookup for rendering paths that only need "something or nothing".
        Alternatives: Always raise and let callers decide.
        """

        try:
            conversation = self.store.get_conversation(conversation_id)
        except PersistenceError:
            logger.exception("Failed to load conversation %s.", conversation_id)
            return None
        if conversation is None:
            logger.info("Conversation %s not found.", conversation_id)
        return conversation

    def fetch(self, conversation_id: str, owner_id: str | None = None) -> Conversation:
        """Summary: Fetch a conversation, distinguishing missing from failed.

        Importance: Lets the orchestrator and API report precise errors.
        Alternatives: Use get() and treat None as not found.
        """

        conversation = self.store.get_conversation(conversation_id)
        if conversation is None or (owner_id is not None and conversation.owner_id != owner_id):
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    def list_by_owner_result(self, owner_id: str) -> ListResult:
        try:
            conversations = self.store.list_conversations(owner_id)
        except PersistenceError as exc:
            logger.exception("Failed to list conversations for user %s.", owner_id)
            return ListResult(items=[], error=str(exc))
        return ListResult(items=conversations)

    def list_by_owner(self, owner_id: str) -> list[Conversation]:
        """Summary: List conversations, most recently updated first.

        Importance: Sidebar listing degrades to empty instead of failing the page.
        Alternatives: Propagate storage errors to the caller.
        """

        return self.list_by_owner_result(owner_id).items

    def append_messages(
        self, conversation_id: str, messages: list[Message], title: str | None = None
    ) -> Conversation:
        """Summary: Append messages and optionally retitle a conversation.

        Importance: Conditional writes keyed on the document version keep concurrent
        appends from overwriting each other.
        Alternatives: Overwrite the whole message array and accept lost updates.
        """

        if not messages:
            raise ValidationError("No messages to append")
        for attempt in range(1, self.append_attempts + 1):
            current = self.store.get_conversation(conversation_id)
            if current is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            updated = replace(
                current,
                messages=current.messages + tuple(messages),
                title=title if title is not None else current.title,
                updated_at=max(now_ms(), current.updated_at),
                version=current.version + 1,
            )
            if self.store.update_conversation(updated, expected_version=current.version):
                return updated
            logger.warning(
                "Concurrent write on conversation %s (attempt %s of %s).",
                conversation_id,
                attempt,
                self.append_attempts,
            )
        raise ConflictError(f"Could not append to conversation {conversation_id}")


@dataclass(frozen=True)
class ChatService:
    """Summary: Sequences one user turn end to end.

    Importance: Guarantees a persisted user message is always followed by a reply.
    Alternatives: Let clients write messages and call the AI themselves.
    """

    conversations: ConversationService
    responder: AiResponder

    def submit_turn(
        self, conversation_id: str | None, owner_id: str, user_text: str
    ) -> TurnResult:
        """Summary: Persist a user message, ask the AI, and persist the reply.

        Importance: The user message is durable before the AI call starts, and the
        title is derived only on a conversation's first exchange. Callers must not
        start a second turn on the same conversation while one is in flight; this
        method does not lock.
        Alternatives: Persist both messages together after the AI call.
        """

        content = (user_text or "").strip()
        if not content:
            raise ValidationError("Message content cannot be empty")
        if conversation_id is None:
            conversation_id = self.conversations.create(owner_id)
        conversation = self.conversations.fetch(conversation_id, owner_id=owner_id)
        first_exchange = not conversation.messages
        user_message = Message.create(content, ROLE_USER)
        title = make_title(content) if first_exchange else None
        user_saved = False
        try:
            self.conversations.append_messages(conversation_id, [user_message])
            user_saved = True
            logger.info("Conversation %s: user message persisted.", conversation_id)
            logger.info("Conversation %s: AI requested.", conversation_id)
            reply = self.responder.generate(user_text)
            assistant_message = Message.create(
                reply.text, ROLE_ASSISTANT, not_before=user_message.timestamp
            )
            updated = self.conversations.append_messages(
                conversation_id, [assistant_message], title=title
            )
            logger.info("Conversation %s: AI reply persisted.", conversation_id)
            return TurnResult(
                conversation_id=conversation_id,
                user_message=user_message,
                assistant_message=assistant_message,
                title=updated.title,
                ai_failed=reply.failed,
            )
        except PersistenceError:
            logger.exception("Conversation %s: turn failed, recording error reply.", conversation_id)
        error_message = Message.create(
            ERROR_REPLY, ROLE_ASSISTANT, not_before=user_message.timestamp
        )
        # The user message goes in with the placeholder if its own write failed.
        pending = [error_message] if user_saved else [user_message, error_message]
        updated = self.conversations.append_messages(conversation_id, pending, title=title)
        logger.info("Conversation %s: AI error persisted.", conversation_id)
        return TurnResult(
            conversation_id=conversation_id,
            user_message=user_message,
            assistant_message=error_message,
            title=updated.title,
            ai_failed=True,
        )


@dataclass(frozen=True)
class SharingService:
    """Summary: Forwards assistant replies to other users' inboxes.

    Importance: Shares are append-only records keyed by recipient email.
    Alternatives: Copy messages into the recipient's conversations.
    """

    store: SqliteStore
    users: UserService
    conversations: ConversationService

    def share(self, sender_id: str, content: str, recipient_email: str) -> str:
        """Summary: Record a shared message for a recipient email.

        Importance: Unregistered recipients are accepted; the share is simply never read.
        Alternatives: Reject recipients without an account.
        """

        if not (content or "").strip():
            raise ValidationError("Message content cannot be empty")
        recipient = normalize_email(recipient_email)
        if not recipient:
            raise ValidationError("Please enter an email address")
        if not _EMAIL_PATTERN.match(recipient):
            raise ValidationError("Please enter a valid email address")
        sender_email = self.users.get_email(sender_id)
        record = SharedMessageRecord(
            id=new_id(),
            content=content,
            sender_email=sender_email,
            recipient_email=recipient,
            sender_id=sender_id,
            timestamp=now_ms(),
        )
        self.store.insert_shared_message(record)
        logger.info("User %s shared message %s.", sender_id, record.id)
        return record.id

    def share_message(
        self, sender_id: str, conversation_id: str, message_id: str, recipient_email: str
    ) -> str:
        """Summary: Share an assistant message from one of the sender's conversations.

        Importance: Only assistant replies are shareable.
        Alternatives: Accept arbitrary text from the client.
        """

        conversation = self.conversations.fetch(conversation_id, owner_id=sender_id)
        message = conversation.find_message(message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found")
        if message.role != ROLE_ASSISTANT:
            raise ValidationError("Only assistant messages can be shared")
        return self.share(sender_id, message.content, recipient_email)

    def list_inbox_result(self, recipient_id: str) -> ListResult:
        try:
            email = self.users.get_email(recipient_id)
            records = self.store.list_shared_messages(email)
        except (NotFoundError, PersistenceError) as exc:
            logger.exception("Failed to load inbox for user %s.", recipient_id)
            return ListResult(items=[], error=str(exc))
        return ListResult(items=records)

    def list_inbox(self, recipient_id: str) -> list[SharedMessageRecord]:
        """Summary: List messages shared with a user, newest first.

        Importance: Inbox degrades to empty instead of failing the page.
        Alternatives: Propagate lookup errors to the caller.
        """

        return self.list_inbox_result(recipient_id).items
