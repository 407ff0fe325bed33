"""
Status-update conversation: one contractor chatting about one project.

A ChatSession owns the in-memory transcript (what the contractor sees) and
writes each turn to the record store as a StatusUpdate plus a bump of the
project's update counter. The transcript is authoritative for display; the
two writes are best-effort and never roll the transcript back.

States::

    UNINITIALIZED -> LOADING -> READY | NOT_FOUND | UNAUTHENTICATED
    READY -> AWAITING_GENERATION -> READY
"""
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from status_tracker.services.auth_state import AuthState
from status_tracker.services.prompts import (
    GENERATION_FALLBACK_MESSAGE,
    build_greeting,
    build_status_update_prompt,
)
from status_tracker.services.record_store import (
    PROJECT_ANALYSIS,
    PROJECTS,
    STATUS_UPDATES,
    RecordStore,
    RecordStoreError,
)
from status_tracker.services.text_generation import TextGenerator
from status_tracker.utils.retry import call_with_retry

logger = logging.getLogger(__name__)


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SessionState(str, enum.Enum):
    UNINITIALIZED = "UNINITIALIZED"
    LOADING = "LOADING"
    READY = "READY"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    AWAITING_GENERATION = "AWAITING_GENERATION"


@dataclass
class Message:
    role: MessageRole
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.utcnow)


class ChatSession:
    def __init__(
        self,
        project_id: str,
        store: RecordStore,
        generator: TextGenerator,
        auth_state: AuthState,
        *,
        model: str,
        max_tokens: int,
        context_window: int = 6,
        persist_attempts: int = 1,
        persist_backoff: float = 0.5,
        replay_history: bool = False,
        replay_limit: int = 20,
    ) -> None:
        self.project_id = project_id
        self.session_id = uuid.uuid4().hex
        self._store = store
        self._generator = generator
        self._auth_state = auth_state
        self._model = model
        self._max_tokens = max_tokens
        self._context_window = context_window
        self._persist_attempts = persist_attempts
        self._persist_backoff = persist_backoff
        self._replay_history = replay_history
        self._replay_limit = replay_limit

        self.state = SessionState.UNINITIALIZED
        self.project: Optional[Dict[str, Any]] = None
        self.analysis_text: Optional[str] = None
        self._transcript: List[Message] = []
        self._user_id: Optional[str] = None
        self._updates_count = 0
        self._in_flight = False
        # Bumped whenever the transcript is replaced; a turn that straddles a
        # reload or close persists but does not append to the new transcript
        self._generation = 0
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def transcript(self) -> List[Message]:
        return list(self._transcript)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def _log_extra(self, **extra) -> Dict[str, Any]:
        base = {"project_id": self.project_id, "session_id": self.session_id, "user_id": self._user_id}
        base.update(extra)
        return base

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _on_auth_change(self, user) -> None:
        self._user_id = str(user.id) if user is not None else None
        if self.state in (SessionState.UNINITIALIZED, SessionState.LOADING, SessionState.NOT_FOUND):
            return
        if self._user_id is None:
            self.state = SessionState.UNAUTHENTICATED
        elif self.project is not None and self.state == SessionState.UNAUTHENTICATED:
            self.state = SessionState.READY
        elif self.project is None and self.state == SessionState.UNAUTHENTICATED:
            # Signed in after an unauthenticated open: load now
            self._load()

    # ------------------------------------------------------------------
    # Initialize
    # ------------------------------------------------------------------

    def open(self) -> SessionState:
        """
        Load the project and seed the transcript with the greeting.

        Re-opening while a turn is awaiting generation leaves the session
        untouched and returns its current state.
        """
        if self._unsubscribe is None:
            self._unsubscribe = self._auth_state.subscribe(self._on_auth_change)
        if self._in_flight:
            return self.state
        return self._load()

    def _load(self) -> SessionState:
        self._generation += 1
        self.state = SessionState.LOADING
        self._transcript = []
        self.project = None
        self.analysis_text = None

        if self._user_id is None:
            logger.info("Chat session opened without a user", extra=self._log_extra(status="unauthenticated"))
            self.state = SessionState.UNAUTHENTICATED
            return self.state

        try:
            project = self._store.get(PROJECTS, self.project_id)
        except RecordStoreError as e:
            logger.error(f"Failed to load project for chat: {e}", extra=self._log_extra())
            project = None

        if project is None:
            logger.info("Chat session opened for unknown project", extra=self._log_extra(status="not_found"))
            self.state = SessionState.NOT_FOUND
            return self.state

        self.project = project
        self._updates_count = project.get("updates_count") or 0

        try:
            analyses = self._store.list(PROJECT_ANALYSIS, filter={"project_id": self.project_id}, limit=1)
        except RecordStoreError as e:
            logger.error(f"Failed to load schedule analysis, continuing without it: {e}", extra=self._log_extra())
            analyses = []
        if analyses:
            self.analysis_text = analyses[0].get("schedule_analysis")

        self._transcript = [Message(role=MessageRole.ASSISTANT, content=build_greeting(project))]
        if self._replay_history:
            self._transcript.extend(self._load_history())

        self.state = SessionState.READY
        logger.info("Chat session ready", extra=self._log_extra(status="ready"))
        return self.state

    def _load_history(self) -> List[Message]:
        try:
            updates = self._store.list(
                STATUS_UPDATES,
                filter={"project_id": self.project_id},
                order_by="-created_at",
                limit=self._replay_limit,
            )
        except RecordStoreError as e:
            logger.error(f"Failed to replay status updates: {e}", extra=self._log_extra())
            return []
        messages: List[Message] = []
        for update in reversed(updates):
            timestamp = update.get("created_at") or datetime.utcnow()
            messages.append(Message(role=MessageRole.USER, content=update["user_message"], timestamp=timestamp))
            messages.append(Message(role=MessageRole.ASSISTANT, content=update["ai_response"], timestamp=timestamp))
        return messages

    # ------------------------------------------------------------------
    # SubmitMessage
    # ------------------------------------------------------------------

    async def submit(self, text: str) -> Optional[Tuple[Message, Message]]:
        """
        Run one turn. Returns the (user, assistant) messages appended, or
        None when the submission was ignored: blank text, a turn already in
        flight, no signed-in user, or a session that is not ready.
        """
        content = (text or "").strip()
        if not content or self._in_flight or self._user_id is None or self.state != SessionState.READY:
            return None

        user_id = self._user_id
        generation = self._generation
        self._in_flight = True
        self.state = SessionState.AWAITING_GENERATION
        try:
            history = list(self._transcript)
            user_message = Message(role=MessageRole.USER, content=content)
            self._transcript.append(user_message)

            prompt = build_status_update_prompt(
                self.project,
                self.analysis_text,
                history,
                content,
                window=self._context_window,
            )
            try:
                reply = await self._generator.generate(prompt, model=self._model, max_tokens=self._max_tokens)
            except Exception as e:
                logger.error(f"Status update generation failed: {e}", extra=self._log_extra())
                reply = GENERATION_FALLBACK_MESSAGE

            assistant_message = Message(role=MessageRole.ASSISTANT, content=reply)
            if generation == self._generation:
                self._transcript.append(assistant_message)
            else:
                logger.info("Transcript replaced during generation, reply not shown", extra=self._log_extra())
        finally:
            self._in_flight = False
            if self.state == SessionState.AWAITING_GENERATION:
                self.state = SessionState.READY

        await self._persist_turn(user_id, content, reply)
        return user_message, assistant_message

    async def _persist_turn(self, user_id: str, user_text: str, reply: str) -> None:
        now = datetime.utcnow()
        record = {
            "id": f"update_{uuid.uuid4().hex}",
            "project_id": self.project_id,
            "user_id": user_id,
            "user_message": user_text,
            "ai_response": reply,
            "created_at": now,
        }
        try:
            await self._with_retry(self._store.create, STATUS_UPDATES, record)
        except RecordStoreError as e:
            logger.error(f"Failed to save status update: {e}", extra=self._log_extra())

        self._updates_count = self._next_updates_count()
        try:
            await self._with_retry(
                self._store.update,
                PROJECTS,
                self.project_id,
                {"updates_count": self._updates_count, "last_update": now},
            )
        except RecordStoreError as e:
            logger.error(f"Failed to update project counter: {e}", extra=self._log_extra())

    def _next_updates_count(self) -> int:
        # Read-then-write, not atomic: concurrent sessions on one project can lose an increment
        try:
            current = self._store.get(PROJECTS, self.project_id)
        except RecordStoreError as e:
            logger.warning(f"Could not re-read project counter, using session count: {e}", extra=self._log_extra())
            current = None
        if current is not None:
            return (current.get("updates_count") or 0) + 1
        return self._updates_count + 1

    async def _with_retry(self, func, *args):
        return await call_with_retry(
            func,
            *args,
            attempts=self._persist_attempts,
            min_wait=self._persist_backoff,
            max_wait=self._persist_backoff * 10,
            exception_types=(RecordStoreError,),
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._generation += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._transcript = []
        self.project = None
        self.analysis_text = None
        self.state = SessionState.UNINITIALIZED
        logger.info("Chat session closed", extra=self._log_extra(status="closed"))


class ChatSessionRegistry:
    """
    One AuthState per user and one ChatSession per (user, project).

    With an ``idle_timeout`` (seconds), sessions untouched for longer are
    closed on the next open or lookup, unless a turn is in flight. A user's
    AuthState goes with their last session.
    """

    def __init__(
        self,
        session_factory: Callable[[str, AuthState], ChatSession],
        idle_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._auth_states: Dict[str, AuthState] = {}
        self._sessions: Dict[Tuple[str, str], ChatSession] = {}
        self._last_seen: Dict[Tuple[str, str], float] = {}

    def auth_state(self, user_id: str) -> AuthState:
        state = self._auth_states.get(user_id)
        if state is None:
            state = AuthState()
            self._auth_states[user_id] = state
        return state

    def sign_in(self, user) -> AuthState:
        state = self.auth_state(str(user.id))
        state.set_user(user)
        return state

    def sign_out(self, user_id: str) -> None:
        state = self._auth_states.get(user_id)
        if state is not None:
            state.set_user(None)

    def get(self, user_id: str, project_id: str) -> Optional[ChatSession]:
        self.evict_idle()
        key = (user_id, project_id)
        session = self._sessions.get(key)
        if session is not None:
            self._last_seen[key] = self._clock()
        return session

    def open(self, user, project_id: str) -> ChatSession:
        """Open (or re-open) the user's session for a project."""
        self.evict_idle()
        key = (str(user.id), project_id)
        auth_state = self.sign_in(user)
        session = self._sessions.get(key)
        if session is None:
            session = self._session_factory(project_id, auth_state)
            self._sessions[key] = session
        self._last_seen[key] = self._clock()
        session.open()
        return session

    def close(self, user_id: str, project_id: str) -> bool:
        session = self._sessions.pop((user_id, project_id), None)
        self._last_seen.pop((user_id, project_id), None)
        if session is None:
            return False
        session.close()
        return True

    def evict_idle(self) -> int:
        """Close sessions idle past the timeout. Returns how many were closed."""
        if not self._idle_timeout:
            return 0
        cutoff = self._clock() - self._idle_timeout
        stale = [
            key for key, seen in self._last_seen.items()
            if seen < cutoff and not self._sessions[key].in_flight
        ]
        for key in stale:
            self.close(*key)
        for user_id in {user_id for user_id, _ in stale}:
            if not any(owner == user_id for owner, _ in self._sessions):
                self._auth_states.pop(user_id, None)
        if stale:
            logger.info(f"Evicted {len(stale)} idle chat sessions", extra={"status": "evicted"})
        return len(stale)

    def close_all(self) -> None:
        for session in list(self._sessions.values()):
            session.close()
        self._sessions.clear()
        self._last_seen.clear()
        self._auth_states.clear()

    def __len__(self) -> int:
        return len(self._sessions)
