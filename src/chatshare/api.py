"""Summary: FastAPI application for ChatShare.

Importance: Exposes chat, conversation, and sharing workflows to web clients.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chatshare.ai import AiProvider
from chatshare.app import build_services
from chatshare.config import AppConfig
from chatshare.errors import NotFoundError, PersistenceError, ValidationError
from chatshare.models import Conversation, Message, SharedMessageRecord
from chatshare.services import ERROR_REPLY


logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    """Summary: Request payload for a chat turn.

    Importance: A missing conversation_id starts a new conversation.
    Alternatives: Require clients to create conversations first.
    """

    conversation_id: str | None = None
    content: str = Field(max_length=20000)


class ShareRequest(BaseModel):
    """Summary: Request payload for sharing an assistant message.

    Importance: Identifies the message by conversation and message ID.
    Alternatives: Accept raw message text from the client.
    """

    conversation_id: str
    message_id: str
    recipient_email: str


def _message_payload(message: Message) -> dict[str, Any]:
    return message.to_dict()


def _conversation_payload(conversation: Conversation, include_messages: bool = True) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": conversation.id,
        "title": conversation.title,
        "created_at": conversation.created_at,
        "updated_at": conversation.updated_at,
        "message_count": len(conversation.messages),
    }
    if include_messages:
        payload["messages"] = [_message_payload(message) for message in conversation.messages]
    return payload


def _shared_payload(record: SharedMessageRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "content": record.content,
        "sender_email": record.sender_email,
        "timestamp": record.timestamp,
    }


def create_app(config: AppConfig, ai_provider: AiProvider | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to ChatShare services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="ChatShare API", version="0.1.0")
    services = build_services(config, ai_provider=ai_provider)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Persistence failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": ERROR_REPLY})

    def current_user_id(x_api_key: str | None = Header(default=None)) -> str:
        """Summary: Resolve the calling user from the X-API-Key header.

        Importance: Scopes every request to one owner.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not x_api_key:
            raise HTTPException(status_code=401, detail="Missing API key")
        user_id = services.api_keys.resolve_user_id(x_api_key)
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid API key")
        return user_id

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/conversations")
    def create_conversation(user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        conversation_id = services.conversations.create(user_id)
        return {"id": conversation_id}

    @app.get("/conversations")
    def list_conversations(user_id: str = Depends(current_user_id)) -> list[dict[str, Any]]:
        """Summary: List the caller's conversations, most recent first.

        Importance: Storage failures render as an empty list.
        Alternatives: Return 503 when the listing fails.
        """

        return [
            _conversation_payload(conversation, include_messages=False)
            for conversation in services.conversations.list_by_owner(user_id)
        ]

    @app.get("/conversations/{conversation_id}")
    def get_conversation(
        conversation_id: str, user_id: str = Depends(current_user_id)
    ) -> dict[str, Any]:
        conversation = services.conversations.fetch(conversation_id, owner_id=user_id)
        return _conversation_payload(conversation)

    @app.post("/chat")
    def chat(payload: ChatRequest, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        """Summary: Run one chat turn.

        Importance: Returns both persisted messages and the current title.
        Alternatives: Return only the assistant reply text.
        """

        result = services.chat.submit_turn(payload.conversation_id, user_id, payload.content)
        return {
            "conversation_id": result.conversation_id,
            "title": result.title,
            "user_message": _message_payload(result.user_message),
            "assistant_message": _message_payload(result.assistant_message),
            "ai_failed": result.ai_failed,
        }

    @app.post("/share")
    def share(payload: ShareRequest, user_id: str = Depends(current_user_id)) -> dict[str, Any]:
        record_id = services.sharing.share_message(
            user_id, payload.conversation_id, payload.message_id, payload.recipient_email
        )
        return {"id": record_id}

    @app.get("/inbox")
    def inbox(user_id: str = Depends(current_user_id)) -> list[dict[str, Any]]:
        return [_shared_payload(record) for record in services.sharing.list_inbox(user_id)]

    return app
