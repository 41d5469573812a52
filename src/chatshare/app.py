"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from chatshare.ai import AiProvider, AiProviderFactory, AiResponder
from chatshare.config import AppConfig
from chatshare.services import (
    ApiKeyService,
    ChatService,
    ConversationService,
    SharingService,
    UserService,
)
from chatshare.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for ChatShare.

    Importance: Simplifies passing dependencies to UI or API layers.
    Alternatives: Use a dependency injection container.
    """

    users: UserService
    api_keys: ApiKeyService
    conversations: ConversationService
    chat: ChatService
    sharing: SharingService
    store: SqliteStore


def build_services(config: AppConfig, ai_provider: AiProvider | None = None) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Provides a single construction path; tests may pass a stub provider.
    Alternatives: Instantiate services directly within each entrypoint.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    if ai_provider is None:
        provider = AiProviderFactory(config).build()
        logger.info("Using AI provider %s (%s).", config.ai_provider, config.model_name)
    else:
        provider = ai_provider
    users = UserService(store=store)
    conversations = ConversationService(store=store, append_attempts=config.append_attempts)
    return AppServices(
        users=users,
        api_keys=ApiKeyService(store=store, token_secret=config.token_secret),
        conversations=conversations,
        chat=ChatService(conversations=conversations, responder=AiResponder(provider)),
        sharing=SharingService(store=store, users=users, conversations=conversations),
        store=store,
    )

