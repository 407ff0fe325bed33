"""
Explicitly constructed collaborator handles for one running application.

``build_services`` is called at startup and the result hangs off
``app.state.services``; ``Services.close`` runs at shutdown. Routes reach it
through ``deps.get_services``.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from status_tracker.config import Settings
from status_tracker.services.auth_state import AuthState
from status_tracker.services.chat_session import ChatSession, ChatSessionRegistry
from status_tracker.services.record_store import KeyValueRecordStore, RecordStore, SqlRecordStore
from status_tracker.services.storage import StorageBackend, get_storage_backend
from status_tracker.services.text_generation import TextGenerator, get_text_generator

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: RecordStore
    storage: StorageBackend
    generator: TextGenerator
    chat_sessions: ChatSessionRegistry

    def close(self) -> None:
        self.chat_sessions.close_all()
        self.generator.close()
        self.storage.close()
        self.store.close()
        logger.info("Services closed")


def build_record_store(settings: Settings, session_factory: Callable[[], Session]) -> RecordStore:
    kind = (settings.RECORD_STORE or "sql").lower()
    if kind == "kv":
        logger.info("Using key-value record store (offline mode)")
        return KeyValueRecordStore.from_url(settings.REDIS_URL)
    return SqlRecordStore(session_factory)


def chat_session_factory(settings: Settings, store: RecordStore, generator: TextGenerator):
    def factory(project_id: str, auth_state: AuthState) -> ChatSession:
        return ChatSession(
            project_id,
            store,
            generator,
            auth_state,
            model=settings.AI_MODEL,
            max_tokens=settings.AI_MAX_TOKENS,
            context_window=settings.CHAT_CONTEXT_WINDOW,
            persist_attempts=settings.STATUS_UPDATE_PERSIST_ATTEMPTS,
            replay_history=settings.CHAT_REPLAY_HISTORY,
            replay_limit=settings.CHAT_REPLAY_LIMIT,
        )
    return factory


def build_services(
    settings: Settings,
    session_factory: Callable[[], Session],
    *,
    store: Optional[RecordStore] = None,
    storage: Optional[StorageBackend] = None,
    generator: Optional[TextGenerator] = None,
) -> Services:
    store = store or build_record_store(settings, session_factory)
    storage = storage or get_storage_backend(settings)
    generator = generator or get_text_generator(settings.OPENAI_API_KEY, settings.AI_MODE, settings.AI_TEMPERATURE)
    registry = ChatSessionRegistry(
        chat_session_factory(settings, store, generator),
        idle_timeout=settings.CHAT_SESSION_IDLE_SECONDS or None,
    )
    logger.info(
        f"Services built: store={type(store).__name__}, storage={type(storage).__name__}, "
        f"generator={type(generator).__name__}"
    )
    return Services(settings=settings, store=store, storage=storage, generator=generator, chat_sessions=registry)
